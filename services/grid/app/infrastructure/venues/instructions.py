"""
Conversión de instrucciones en JSON (formato de los agregadores) a solders.
"""
import base64
from typing import List

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey


def build_instruction(program_id: str, accounts: List[dict], data: bytes,
                      pubkey_key: str = "pubkey") -> Instruction:
    metas = [
        AccountMeta(
            pubkey=Pubkey.from_string(account[pubkey_key]),
            is_signer=bool(account.get("isSigner")),
            is_writable=bool(account.get("isWritable")),
        )
        for account in accounts
    ]
    return Instruction(Pubkey.from_string(program_id), data, metas)


def decode_base64(value: str) -> bytes:
    return base64.b64decode(value) if value else b""


def decode_hex(value: str) -> bytes:
    if value.startswith("0x"):
        value = value[2:]
    return bytes.fromhex(value)
