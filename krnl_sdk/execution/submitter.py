"""
JSON-RPC client for the KRNL execution node.
"""
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .._rate_limited_log import rate_limited_log
from ..exceptions import SubmissionError, UnresolvedPlaceholderError
from ..models import SubmissionResult, WorkflowStatus, WorkflowStatusReport
from ..polling import PollTask
from .workflow import find_unresolved_placeholders

DEFAULT_NODE_URL = "https://v0-1-0.node.lat/"
WORKFLOW_MANIFEST_MEDIA_TYPE = "application/vnd.oci.image.manifest.v1+json"


class ExecutionNodeClient:
    """
    Client for submitting workflows to an execution node.

    Args:
        node_url: Execution node JSON-RPC endpoint
        retry_count: Number of retries for failed connections (POSTs are never resent)
        timeout: Timeout for HTTP requests in seconds
        session: Optional pre-configured requests session
        logger: Optional logger instance
    """

    def __init__(
        self,
        node_url: str = DEFAULT_NODE_URL,
        retry_count: int = 3,
        timeout: int = 60,
        session: Optional[requests.Session] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.node_url = node_url
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

        if session is None:
            session = requests.Session()
            # A POST that reached the node is never resent
            retries = Retry(
                total=retry_count,
                backoff_factor=0.5,
                status_forcelist=[500, 502, 503, 504],
                allowed_methods=["GET"],
                raise_on_status=False,
                connect=retry_count,
                read=retry_count,
                other=0
            )
            session.mount("http://", HTTPAdapter(max_retries=retries))
            session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session = session

    def _rpc(self, method: str, params: List[Any], headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        payload = {"id": 1, "jsonrpc": "2.0", "method": method, "params": params}
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        try:
            response = self.session.post(
                self.node_url,
                json=payload,
                headers=request_headers,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            self.logger.error(f"{method} request failed: {e}")
            raise SubmissionError(f"Execution node unreachable: {e}") from e

        if not 200 <= response.status_code < 300:
            raise SubmissionError(
                f"Execution node returned HTTP {response.status_code} for {method}",
                code=response.status_code,
                data=response.text
            )

        try:
            data = response.json()
        except ValueError as e:
            self.logger.error(f"Invalid JSON response from execution node: {e}")
            raise SubmissionError(f"Invalid JSON response from execution node: {e}") from e

        if not isinstance(data, dict):
            raise SubmissionError(f"Unexpected {method} response: {data!r}")

        error = data.get("error")
        if error:
            if isinstance(error, dict):
                raise SubmissionError(
                    f"{method} failed: {error.get('message', error)}",
                    code=error.get("code"),
                    data=error.get("data")
                )
            raise SubmissionError(f"{method} failed: {error}")

        self.logger.debug(f"{method} response: {data}")
        return data

    def submit(self, workflow: Dict[str, Any]) -> SubmissionResult:
        """
        Submit a rendered workflow with ``krnl_executeWorkflow``.

        Args:
            workflow: Fully substituted workflow document

        Returns:
            SubmissionResult for the accepted workflow

        Raises:
            UnresolvedPlaceholderError: If any {{...}} token remains; nothing is sent
            SubmissionError: If the node rejects the workflow or cannot be reached
        """
        unresolved = find_unresolved_placeholders(workflow)
        if unresolved:
            raise UnresolvedPlaceholderError(
                f"Workflow has unresolved placeholders: {', '.join(unresolved)}",
                placeholders=unresolved
            )

        data = self._rpc(
            "krnl_executeWorkflow",
            [workflow],
            headers={"Accept": WORKFLOW_MANIFEST_MEDIA_TYPE}
        )

        result = data.get("result")
        admission = result.get("admissionResult") if isinstance(result, dict) else None
        reason = admission.get("reason") if isinstance(admission, dict) else None
        if isinstance(admission, dict) and admission.get("accepted") is False:
            self.logger.warning(f"Workflow rejected by execution node: {reason}")
            raise SubmissionError(
                f"Workflow rejected by execution node: {reason or 'no reason given'}",
                data=result
            )

        self.logger.info("Workflow accepted by execution node")
        return SubmissionResult(
            request_id=data.get("id"),
            jsonrpc=data.get("jsonrpc", "2.0"),
            result=result,
            accepted=True,
            reason=reason,
        )

    def workflow_status(self, intent_id: str) -> WorkflowStatusReport:
        """
        Query ``krnl_workflowStatus`` for an intent.

        Raises:
            SubmissionError: If the call fails or returns an unknown status code
        """
        data = self._rpc("krnl_workflowStatus", [intent_id])
        status = data.get("result") or {}
        try:
            return WorkflowStatusReport(code=WorkflowStatus(status.get("code")), result=status.get("result"))
        except (AttributeError, ValueError) as e:
            raise SubmissionError(f"Unexpected workflow status for {intent_id}: {status!r}", data=status) from e

    def await_workflow(self, intent_id: str, timeout: float = 60, poll_interval: float = 2) -> WorkflowStatusReport:
        """
        Poll the node until the workflow reaches a terminal status.

        Transport errors while polling are logged and retried within the timeout.

        Raises:
            ConfirmationTimeoutError: If no terminal status is reported in time
        """
        def check():
            try:
                report = self.workflow_status(intent_id)
            except SubmissionError as e:
                rate_limited_log(f"Workflow status check for {intent_id} failed: {e}", logger_instance=self.logger)
                return None
            return report if report.code.is_terminal else None

        return PollTask(
            check,
            interval=poll_interval,
            timeout=timeout,
            description=f"Workflow {intent_id}",
            intent_id=intent_id,
            logger=self.logger,
        ).run()
