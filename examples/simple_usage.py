#!/usr/bin/env python3
"""
Simple example of using the KRNL delegate SDK.
"""
import os
import json
import logging
from krnl_sdk import KrnlClient, KrnlConfig, KrnlError

def main():
    """
    Demonstrate basic usage of the KrnlClient.

    This example shows how to:
    1. Initialize the client from KRNL_* environment variables
    2. Enable EIP-7702 delegation for the account
    3. Sign, validate and submit an intent, then wait for its execution
    """
    logging.basicConfig(level=logging.INFO)

    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    TARGET_CONTRACT = os.environ.get("TARGET_CONTRACT")
    WORKFLOW_PATH = os.environ.get("WORKFLOW_PATH", "workflow.json")

    # Verify configuration
    if not PRIVATE_KEY:
        print("ERROR: PRIVATE_KEY environment variable is required")
        return

    if not TARGET_CONTRACT:
        print("ERROR: TARGET_CONTRACT environment variable is required")
        return

    try:
        config = KrnlConfig.from_env()
    except ValueError as e:
        print(f"ERROR: {e}")
        return

    with KrnlClient.from_config(config, priv_key=PRIVATE_KEY) as client:
        print(f"Account: {client.address}")

        try:
            # Enable delegation (no transaction if already delegated)
            auth = client.enable_smart_account()
            if auth.transaction_hash is not None:
                print(f"Delegation enabled in tx {auth.transaction_hash} (block {auth.block_number})")
            else:
                print("Account already delegated")

            # Execute an intent with the executions list emptied
            outcome = client.execute_intent(
                TARGET_CONTRACT,
                WORKFLOW_PATH,
                overrides={"workflow.steps.5.inputs.value.authData.executions": []},
                on_state=lambda state, _: print(f"  -> {state.value}"),
            )

            print(f"Intent id: {outcome.intent.id}")
            print(f"Final state: {outcome.state.value}")
            if outcome.confirmation:
                print(f"Executed in tx {outcome.confirmation.transaction_hash}")
                print(json.dumps(outcome.confirmation.event_args, indent=2))
            elif outcome.error:
                print(f"Not yet observed: {outcome.error}")

        except KrnlError as e:
            print(f"Error executing intent: {str(e)}")

if __name__ == "__main__":
    main()
