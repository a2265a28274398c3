#!/usr/bin/env python3
"""
Tests for the SlimGate provenance ledger
"""

import json

import slimgate.ledger as ledger_module


def _record(i=0, outcome="MINIFIED"):
    from slimgate.ledger import generate_run_record

    return generate_run_record(
        outcome=outcome,
        source=f"app:{i}",
        output="slim-output:latest",
        target_ref=f"app:{i}",
        args=["slim", "--tag", "slim-output:latest", "--target", f"app:{i}"],
    )


class TestKeyGeneration:
    """Tests for Ed25519 key generation."""

    def test_generate_keypair(self, temp_slimgate_dir):
        from slimgate.ledger import generate_keypair

        private_key, public_key = generate_keypair()

        assert private_key is not None
        assert public_key is not None
        assert (ledger_module.KEYS_DIR / "private.pem").exists()
        assert (ledger_module.KEYS_DIR / "public.pem").exists()

    def test_load_generates_if_missing(self, temp_slimgate_dir):
        from slimgate.ledger import load_private_key

        assert not (ledger_module.KEYS_DIR / "private.pem").exists()
        assert load_private_key() is not None
        assert (ledger_module.KEYS_DIR / "private.pem").exists()

    def test_public_key_absent(self, temp_slimgate_dir):
        from slimgate.ledger import load_public_key

        assert load_public_key() is None


class TestRunRecord:

    def test_fields(self, temp_slimgate_dir):
        record = _record()

        assert record["outcome"] == "MINIFIED"
        assert record["source"] == "app:0"
        assert record["output"] == "slim-output:latest"
        assert record["args"][0] == "slim"
        assert len(record["args_hash"]) == 16
        assert record["error_stage"] is None
        assert "event_id" in record
        assert "chain_hash" in record
        assert "signature" in record

    def test_failed_record(self, temp_slimgate_dir):
        from slimgate.ledger import generate_run_record

        record = generate_run_record(
            outcome="FAILED",
            source="app:1.0",
            output=None,
            target_ref=None,
            args=[],
            error_stage="load",
            error="[load] boom",
        )
        assert record["output"] is None
        assert record["error_stage"] == "load"

    def test_args_hash_tracks_args(self, temp_slimgate_dir):
        assert _record(1)["args_hash"] != _record(2)["args_hash"]


class TestHashChaining:

    def test_first_record_uses_genesis(self, temp_slimgate_dir):
        from slimgate.ledger import get_previous_hash

        assert get_previous_hash() == "GENESIS"
        _record()
        assert get_previous_hash() != "GENESIS"

    def test_chain_continuity(self, temp_slimgate_dir):
        from slimgate.ledger import get_previous_hash

        r1 = _record(1)
        assert get_previous_hash() == r1["chain_hash"]

        r2 = _record(2, outcome="FALLBACK")
        assert get_previous_hash() == r2["chain_hash"]
        assert r2["chain_hash"] != r1["chain_hash"]

    def test_corrupt_chain_state_restarts(self, temp_slimgate_dir):
        from slimgate.ledger import get_previous_hash

        ledger_module.CHAIN_STATE.write_text("{not json")
        assert get_previous_hash() == "GENESIS"


class TestLedger:

    def test_append(self, temp_slimgate_dir):
        from slimgate.ledger import append_to_ledger

        append_to_ledger({"event_id": "test123", "outcome": "MINIFIED"})

        assert ledger_module.LEDGER.exists()
        assert "test123" in ledger_module.LEDGER.read_text()

    def test_verify_empty(self, temp_slimgate_dir):
        from slimgate.ledger import verify_chain

        assert verify_chain() == (True, None)

    def test_verify_valid(self, temp_slimgate_dir):
        from slimgate.ledger import append_to_ledger, verify_chain

        for i in range(3):
            append_to_ledger(_record(i))

        assert verify_chain() == (True, None)

    def test_tampered_record_detected(self, temp_slimgate_dir):
        from slimgate.ledger import append_to_ledger, verify_chain

        for i in range(3):
            append_to_ledger(_record(i))

        lines = ledger_module.LEDGER.read_text().splitlines()
        record = json.loads(lines[1])
        record["output"] = "evil:latest"
        lines[1] = json.dumps(record)
        ledger_module.LEDGER.write_text("\n".join(lines) + "\n")

        is_valid, error = verify_chain()
        assert is_valid is False
        assert "line 2" in error

    def test_forged_signature_detected(self, temp_slimgate_dir):
        import base64
        from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
        from slimgate.ledger import append_to_ledger, verify_chain

        record = _record()
        forged = Ed25519PrivateKey.generate().sign(record["chain_hash"].encode())
        record["signature"] = base64.b64encode(forged).decode()
        append_to_ledger(record)

        is_valid, error = verify_chain()
        assert is_valid is False
        assert "signature" in error

    def test_invalid_json_line(self, temp_slimgate_dir):
        from slimgate.ledger import verify_chain

        ledger_module.LEDGER.write_text("not json\n")
        is_valid, error = verify_chain()
        assert is_valid is False
        assert "Invalid JSON" in error
