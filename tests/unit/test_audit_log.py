"""Tests for the hash-chained audit ledger."""

import hashlib
import json
import stat
import threading
from pathlib import Path

from credvault.core import audit_log
from credvault.core.audit_log import AuditContext, AuditRecord, compute_entry_hash


def _lines(path: Path) -> list[str]:
    return [line for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def _record(action: str = "create", credential: str = "db") -> AuditRecord:
    return AuditRecord(timestamp="2025-01-15T10:00:00+00:00", action=action, actor="tester", credential=credential)


def test_first_record_has_no_prev_hash(vault_paths):
    record = audit_log.append(vault_paths, _record())

    assert record.prev_hash is None
    assert record.hash_version == 2
    assert record.entry_hash == compute_entry_hash(record)


def test_appends_form_a_chain(vault_paths):
    """Each record links to the entry_hash of the one before it."""
    first = audit_log.log_action(vault_paths, "create", "db")
    second = audit_log.log_action(vault_paths, "rotate", "db")
    third = audit_log.log_action(vault_paths, "delete", "db")

    assert second.prev_hash == first.entry_hash
    assert third.prev_hash == second.entry_hash

    total, errors = audit_log.verify_chain(vault_paths)
    assert total == 3
    assert errors == []


def test_chain_head_recovered_from_file(vault_paths):
    """The previous hash is read back from the ledger, not from process state."""
    audit_log.log_action(vault_paths, "create", "db")
    last_line = _lines(vault_paths.audit_log)[-1]

    record = audit_log.log_action(vault_paths, "get", "db")

    assert record.prev_hash == json.loads(last_line)["entry_hash"]


def test_entry_hash_is_sha256_of_canonical_json(vault_paths):
    audit_log.log_action(vault_paths, "create", "db")
    data = json.loads(_lines(vault_paths.audit_log)[0])

    stored = data.pop("entry_hash")
    canonical = json.dumps(data, sort_keys=True, ensure_ascii=False, separators=(",", ":"))

    assert stored == hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def test_hash_independent_of_key_order():
    a = {"timestamp": "t", "action": "get", "actor": "u", "credential": "c", "result": {"success": False, "error": "x"}}
    b = {"result": {"error": "x", "success": False}, "credential": "c", "actor": "u", "action": "get", "timestamp": "t"}

    assert compute_entry_hash(a) == compute_entry_hash(b)


def test_hash_ignores_entry_hash_field():
    data = {"timestamp": "t", "action": "get", "actor": "u", "credential": "c"}

    assert compute_entry_hash(data) == compute_entry_hash({**data, "entry_hash": "deadbeef"})


def test_tampered_record_detected_twice(vault_paths):
    """Editing a middle record breaks its own hash and the next record's link."""
    for action in ("create", "rotate", "delete"):
        audit_log.log_action(vault_paths, action, "db")

    lines = _lines(vault_paths.audit_log)
    middle = json.loads(lines[1])
    middle["credential"] = "someone-else"
    lines[1] = json.dumps(middle, separators=(",", ":"))
    vault_paths.audit_log.write_text("\n".join(lines) + "\n", encoding="utf-8")

    total, errors = audit_log.verify_chain(vault_paths)

    assert total == 3
    assert len(errors) >= 2
    assert any(error.startswith("entry 2: entry_hash mismatch") for error in errors)
    assert any(error.startswith("entry 3: prev_hash mismatch") for error in errors)


def test_deleted_record_breaks_chain(vault_paths):
    for action in ("create", "rotate", "delete"):
        audit_log.log_action(vault_paths, action, "db")

    lines = _lines(vault_paths.audit_log)
    del lines[1]
    vault_paths.audit_log.write_text("\n".join(lines) + "\n", encoding="utf-8")

    _, errors = audit_log.verify_chain(vault_paths)

    assert len(errors) == 1
    assert errors[0].startswith("entry 2: prev_hash mismatch")


def test_missing_entry_hash_on_current_scheme(vault_paths):
    audit_log.log_action(vault_paths, "create", "db")
    data = json.loads(_lines(vault_paths.audit_log)[0])
    del data["entry_hash"]
    vault_paths.audit_log.write_text(json.dumps(data) + "\n", encoding="utf-8")

    _, errors = audit_log.verify_chain(vault_paths)

    assert any("entry_hash missing" in error for error in errors)


def test_legacy_records_chain_by_raw_line(vault_paths):
    """Records without hash_version are linked by a digest of their raw line."""
    vault_paths.root.mkdir(parents=True)
    first = json.dumps({"timestamp": "2024-01-01T00:00:00Z", "action": "create", "actor": "old", "credential": "db"})
    first_digest = hashlib.sha256(first.encode("utf-8")).hexdigest()
    second = json.dumps(
        {
            "timestamp": "2024-01-02T00:00:00Z",
            "action": "rotate",
            "actor": "old",
            "credential": "db",
            "prev_hash": first_digest,
        }
    )
    vault_paths.audit_log.write_text(first + "\n" + second + "\n", encoding="utf-8")

    record = audit_log.log_action(vault_paths, "get", "db")

    assert record.prev_hash == hashlib.sha256(second.encode("utf-8")).hexdigest()
    total, errors = audit_log.verify_chain(vault_paths)
    assert total == 3
    assert errors == []


def test_read_log_limit_returns_latest(vault_paths):
    for index in range(5):
        audit_log.log_action(vault_paths, "get", f"cred{index}")

    records = audit_log.read_log(vault_paths, limit=2)

    assert [r.credential for r in records] == ["cred3", "cred4"]
    assert len(audit_log.read_log(vault_paths)) == 5
    assert audit_log.read_log(vault_paths, limit=0) == []


def test_read_log_skips_malformed_lines(vault_paths):
    audit_log.log_action(vault_paths, "create", "db")
    with vault_paths.audit_log.open("a", encoding="utf-8") as handle:
        handle.write("{not json\n")
        handle.write('{"action": "missing-fields"}\n')
    audit_log.log_action(vault_paths, "rotate", "db")

    records = audit_log.read_log(vault_paths)

    assert [r.action for r in records] == ["create", "rotate"]


def test_missing_ledger_is_empty(vault_paths):
    assert audit_log.read_log(vault_paths) == []
    assert audit_log.verify_chain(vault_paths) == (0, [])
    assert audit_log.last_line_hash(vault_paths.audit_log) is None


def test_ledger_permissions(vault_paths):
    audit_log.log_action(vault_paths, "create", "db")
    vault_paths.audit_log.chmod(0o666)

    audit_log.log_action(vault_paths, "rotate", "db")

    assert stat.S_IMODE(vault_paths.audit_log.stat().st_mode) == 0o640


def test_optional_fields_omitted_and_unknown_keys_ignored():
    record = _record()
    data = record.to_dict()

    assert "reason" not in data
    assert "result" not in data
    assert data["metadata_only"] is True

    parsed = AuditRecord.from_dict({**data, "future_field": 1})
    assert parsed == record


def test_log_with_result_records_context(vault_paths):
    ctx = AuditContext(action="get", credential="db", reason="debugging", output_mode="stdout")

    audit_log.log_with_result(vault_paths, ctx, success=False, error="denied")

    data = json.loads(_lines(vault_paths.audit_log)[0])
    assert data["result"] == {"success": False, "error": "denied"}
    assert data["reason"] == "debugging"
    assert data["output_mode"] == "stdout"
    assert data["actor"] == "tester"


def test_detect_actor_prefers_sudo_user(monkeypatch):
    monkeypatch.setenv("SUDO_USER", "alice")
    assert audit_log.detect_actor() == "alice(sudo)"

    monkeypatch.delenv("SUDO_USER")
    monkeypatch.delenv("USER")
    assert audit_log.detect_actor() == "unknown"


def test_last_line_hash_spans_chunks(vault_paths):
    """Tail lookup works when the last record is longer than one read chunk."""
    audit_log.log_action(vault_paths, "create", "db")
    big = _record(credential="x" * (audit_log.TAIL_CHUNK_SIZE * 2))
    written = audit_log.append(vault_paths, big)

    assert audit_log.last_line_hash(vault_paths.audit_log) == written.entry_hash


def test_concurrent_appends_keep_chain_intact(vault_paths):
    """Appends from several threads are serialized by the audit lock."""

    def worker(index: int) -> None:
        for round_ in range(5):
            audit_log.log_action(vault_paths, "get", f"cred{index}-{round_}")

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    total, errors = audit_log.verify_chain(vault_paths)
    assert total == 20
    assert errors == []


def test_append_after_torn_tail_starts_new_line(vault_paths):
    """A partial last line from an interrupted append does not absorb the next record."""
    audit_log.log_action(vault_paths, "create", "a")
    with vault_paths.audit_log.open("a", encoding="utf-8") as handle:
        handle.write('{"timestamp":"2025-01-15T10:00:00+00:00","action":"rot')

    audit_log.log_action(vault_paths, "delete", "b")

    actions = [(r.action, r.credential) for r in audit_log.read_log(vault_paths)]
    assert actions == [("create", "a"), ("delete", "b")]
    assert json.loads(_lines(vault_paths.audit_log)[-1])["action"] == "delete"

    total, errors = audit_log.verify_chain(vault_paths)
    assert total == 2
    assert len(errors) == 1
    assert "prev_hash mismatch" in errors[0]
