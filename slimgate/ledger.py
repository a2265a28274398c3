#!/usr/bin/env python3
"""
SlimGate Provenance Ledger

- Ed25519 key generation and signing
- SHA-256 hash chaining
- One tamper-evident record per minify run: what went in,
  what came out, and the exact engine arguments
"""

import base64
import hashlib
import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey

from . import __version__

SLIMGATE_DIR = Path.home() / ".slimgate"
KEYS_DIR = SLIMGATE_DIR / "keys"
LEDGER = SLIMGATE_DIR / "ledger.jsonl"
CHAIN_STATE = SLIMGATE_DIR / "chain_state.json"

GENESIS = "GENESIS"


def ensure_directories():
    """Create SlimGate directories if they don't exist."""
    SLIMGATE_DIR.mkdir(parents=True, exist_ok=True)
    KEYS_DIR.mkdir(parents=True, exist_ok=True)


def generate_keypair() -> Tuple[Ed25519PrivateKey, Ed25519PublicKey]:
    """Generate Ed25519 keypair and save to disk."""
    ensure_directories()

    private_key = Ed25519PrivateKey.generate()
    public_key = private_key.public_key()

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    (KEYS_DIR / "private.pem").write_bytes(private_pem)

    public_pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    (KEYS_DIR / "public.pem").write_bytes(public_pem)

    return private_key, public_key


def load_private_key() -> Ed25519PrivateKey:
    """Load private key from disk, generate if not exists."""
    private_path = KEYS_DIR / "private.pem"

    if not private_path.exists():
        private_key, _ = generate_keypair()
        return private_key

    return serialization.load_pem_private_key(private_path.read_bytes(), password=None)


def load_public_key() -> Optional[Ed25519PublicKey]:
    public_path = KEYS_DIR / "public.pem"
    if not public_path.exists():
        return None
    return serialization.load_pem_public_key(public_path.read_bytes())


def get_previous_hash() -> str:
    """Get the hash of the previous record for chaining."""
    if not CHAIN_STATE.exists():
        return GENESIS

    try:
        state = json.loads(CHAIN_STATE.read_text())
    except json.JSONDecodeError:
        return GENESIS
    return state.get("last_hash", GENESIS)


def save_chain_state(last_hash: str):
    """Save the latest hash for chain continuity."""
    ensure_directories()
    CHAIN_STATE.write_text(json.dumps({
        "last_hash": last_hash,
        "updated": datetime.now(timezone.utc).isoformat()
    }))


def _chain_hash(record: Dict[str, Any], prev_hash: str) -> str:
    record_bytes = json.dumps(record, sort_keys=True).encode()
    return hashlib.sha256(record_bytes + prev_hash.encode()).hexdigest()


def generate_run_record(
    outcome: str,
    source: str,
    output: Optional[str],
    target_ref: Optional[str],
    args: List[str],
    source_id: Optional[str] = None,
    output_id: Optional[str] = None,
    error_stage: Optional[str] = None,
    error: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Generate a signed record of one minify run.

    Args:
        outcome: "MINIFIED", "FALLBACK" or "FAILED"
        source: Reference of the input image
        output: Reference of the image handed back, if any
        target_ref: Reference the engine was pointed at inside the daemon
        args: Engine argument vector (empty if never built)
        error_stage: Stage of the failure, if any

    Returns:
        Complete signed record
    """
    ensure_directories()
    prev_hash = get_previous_hash()

    record = {
        "event_id": str(uuid.uuid4()),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "outcome": outcome,
        "source": source,
        "source_id": source_id,
        "output": output,
        "output_id": output_id,
        "target_ref": target_ref,
        "args": list(args),
        "args_hash": hashlib.sha256("\0".join(args).encode()).hexdigest()[:16],
        "error_stage": error_stage,
        "error": error,
        "slimgate_version": __version__,
    }

    chain_hash = _chain_hash(record, prev_hash)
    record["chain_hash"] = chain_hash

    signature = load_private_key().sign(chain_hash.encode())
    record["signature"] = base64.b64encode(signature).decode()

    save_chain_state(chain_hash)
    return record


def append_to_ledger(record: Dict[str, Any]):
    """Append a run record to the ledger."""
    ensure_directories()
    with open(LEDGER, "a") as f:
        f.write(json.dumps(record) + "\n")


def verify_chain() -> Tuple[bool, Optional[str]]:
    """
    Verify the integrity of the ledger chain and its signatures.

    Returns:
        Tuple of (is_valid: bool, error_message: str|None)
    """
    if not LEDGER.exists():
        return True, None

    public_key = load_public_key()
    prev_hash = GENESIS

    with open(LEDGER, "r") as f:
        for line_num, line in enumerate(f, 1):
            try:
                record = json.loads(line.strip())
            except json.JSONDecodeError:
                return False, f"Invalid JSON at line {line_num}"

            stored_chain_hash = record.pop("chain_hash", None)
            stored_signature = record.pop("signature", None)

            if _chain_hash(record, prev_hash) != stored_chain_hash:
                return False, f"Chain broken at line {line_num}: hash mismatch"

            if public_key is not None and stored_signature:
                try:
                    public_key.verify(base64.b64decode(stored_signature), stored_chain_hash.encode())
                except InvalidSignature:
                    return False, f"Bad signature at line {line_num}"

            prev_hash = stored_chain_hash

    return True, None
