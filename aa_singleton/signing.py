"""
Building and signing user operations.
"""
import logging
from typing import Any, Dict, Optional, Union

from eth_abi import decode
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from .chain import Chain
from .exceptions import Revert
from .models import UserOperation
from .utils import ZERO_ADDRESS, get_create2_address, selector, to_address

logger = logging.getLogger(__name__)

DEFAULTS_FOR_USER_OP: Dict[str, Any] = {
    "sender": ZERO_ADDRESS,
    "target": None,
    "nonce": 0,
    "init_code": b"",
    "call_data": b"",
    "call_gas": 0,
    "verification_gas": 150000,
    "max_fee_per_gas": 0,
    "max_priority_fee_per_gas": 10**9,
    "paymaster": ZERO_ADDRESS,
    "paymaster_data": b"",
    "signature": b"",
}

GET_NONCE = selector("getNonce()")


def _as_account(private_key: Union[str, bytes, LocalAccount]) -> LocalAccount:
    if isinstance(private_key, LocalAccount):
        return private_key
    return Account.from_key(private_key)


def get_account_nonce(chain: Chain, account: str) -> int:
    """Read ``getNonce()`` of a deployed account; 0 if nothing is deployed there."""
    if chain.get_code(account) is None:
        return 0
    try:
        outcome = chain.call(ZERO_ADDRESS, account, lambda ctx, program: program.call(ctx, GET_NONCE))
    except Revert as e:
        logger.debug(f"getNonce() failed on {account}: {e}")
        return 0
    return decode(["uint256"], outcome.result)[0]


def fill_user_op(chain: Chain, singleton: str, **fields: Any) -> UserOperation:
    """
    Complete a partial operation with sensible defaults.

    - With ``init_code`` and no ``sender``, the sender is the counterfactual
      address of the account (``nonce`` is the salt, defaulting to 0).
    - Without ``nonce``, it is read from the deployed account.
    - Without ``max_fee_per_gas``, it is the chain's base fee plus the
      priority fee.

    Args:
        chain: Chain the operation will be submitted to
        singleton: Address of the singleton
        **fields: Operation fields, by python name

    Returns:
        The filled (unsigned) operation
    """
    op = dict(DEFAULTS_FOR_USER_OP)
    op.update(fields)

    if "sender" not in fields:
        if op["init_code"]:
            op["sender"] = get_create2_address(to_address(singleton), op["nonce"], op["init_code"])
        elif op["target"]:
            op["sender"] = op["target"]
    if "nonce" not in fields and not op["init_code"]:
        op["nonce"] = get_account_nonce(chain, to_address(op["sender"]))
    if "max_fee_per_gas" not in fields:
        op["max_fee_per_gas"] = chain.base_fee + op["max_priority_fee_per_gas"]

    return UserOperation(**op)


def sign_user_op(
    op: UserOperation,
    private_key: Union[str, bytes, LocalAccount],
    singleton: str,
    chain_id: int
) -> UserOperation:
    """Sign the request id of ``op`` with an EIP-191 personal signature."""
    account = _as_account(private_key)
    request_id = op.request_id(to_address(singleton), chain_id)
    signed = account.sign_message(encode_defunct(primitive=request_id))
    return op.model_copy(update={"signature": bytes(signed.signature)})


def fill_and_sign(
    chain: Chain,
    singleton: str,
    private_key: Union[str, bytes, LocalAccount],
    **fields: Any
) -> UserOperation:
    """``fill_user_op`` followed by ``sign_user_op``."""
    op = fill_user_op(chain, singleton, **fields)
    return sign_user_op(op, private_key, singleton, chain.chain_id)


def recover_signer(op: UserOperation, singleton: str, chain_id: int) -> Optional[str]:
    """Address that signed ``op``, or None if the signature doesn't recover."""
    try:
        signer = Account.recover_message(
            encode_defunct(primitive=op.request_id(to_address(singleton), chain_id)),
            signature=op.signature
        )
    except Exception as e:
        logger.debug(f"Could not recover signer: {e}")
        return None
    return to_address(signer)
