from .client_creator import (
    create_test_client,
    TEST_RPC_URL,
    TEST_NODE_URL,
    TEST_PRIV_KEY,
    TEST_CHAIN_ID,
    TEST_DELEGATED_ACCOUNT,
    TEST_TARGET,
    TEST_DELEGATE,
    TEST_ADDRESS,
    delegation_code,
)
