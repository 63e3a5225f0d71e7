"""
Credential Registry Test Suite

Coverage:
  - Issuance: admin gate, one-per-identity, capacity, identity validation
  - Batch issuance with per-identity results
  - Queries: holds_credential, credential_of, is_used_for
  - Usage marking: owner/admin authorisation, single use
  - Transfer rejection for every caller
  - Store snapshots and notifications
"""

import os
import sys
from unittest.mock import patch

import pytest

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from soulballot.exceptions import (
    AlreadyIssuedError,
    AlreadyUsedError,
    CapacityExceededError,
    InvalidIdentityError,
    InvalidSnapshotError,
    NonTransferableError,
    UnauthorizedError,
    UnknownCredentialError,
)
from soulballot.governance import (
    Credential,
    CredentialCapability,
    CredentialIssued,
    CredentialRegistry,
    CredentialStore,
    CredentialUsed,
    EventLog,
    IssueResult,
    TransferRejected,
)
from helpers import ADMIN, ALICE, BOB, CAROL, DAVE, TRAD, ManualClock


# ══════════════════════════════════════════════════════════════════════
#  HELPERS
# ══════════════════════════════════════════════════════════════════════


def make_registry(capacity=100, **kwargs) -> CredentialRegistry:
    kwargs.setdefault("time_fn", ManualClock())
    return CredentialRegistry(admin=ADMIN, capacity=capacity, **kwargs)


# ══════════════════════════════════════════════════════════════════════
#  ISSUANCE
# ══════════════════════════════════════════════════════════════════════

class TestIssue:

    def test_issue_sequential_ids(self):
        reg = make_registry()
        assert reg.issue(ADMIN, ALICE) == 0
        assert reg.issue(ADMIN, BOB) == 1
        assert reg.total_issued == 2

    def test_credential_record(self):
        clock = ManualClock(1234.0)
        reg = make_registry(time_fn=clock)
        cid = reg.issue(ADMIN, ALICE)
        cred = reg.credential(cid)
        assert cred.owner == ALICE
        assert cred.issuance_index == 1
        assert cred.issued_at == 1234.0

    def test_second_issue_same_identity_fails(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        with pytest.raises(AlreadyIssuedError):
            reg.issue(ADMIN, ALICE)
        assert reg.total_issued == 1

    def test_case_variant_is_same_identity(self):
        reg = make_registry()
        reg.issue(ADMIN, TRAD)
        with pytest.raises(AlreadyIssuedError):
            reg.issue(ADMIN, TRAD.upper().replace("0X", "0x"))

    def test_pq_case_variant_is_same_identity(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        with pytest.raises(AlreadyIssuedError):
            reg.issue(ADMIN, "0xPQ" + "A1" * 32)

    def test_capacity_one(self):
        reg = make_registry(capacity=1)
        assert reg.issue(ADMIN, ALICE) == 0
        with pytest.raises(CapacityExceededError):
            reg.issue(ADMIN, BOB)
        assert not reg.holds_credential(BOB)

    def test_already_issued_reported_before_capacity(self):
        reg = make_registry(capacity=1)
        reg.issue(ADMIN, ALICE)
        with pytest.raises(AlreadyIssuedError):
            reg.issue(ADMIN, ALICE)

    def test_zero_capacity(self):
        reg = make_registry(capacity=0)
        with pytest.raises(CapacityExceededError):
            reg.issue(ADMIN, ALICE)

    def test_negative_capacity_rejected(self):
        with pytest.raises(ValueError):
            make_registry(capacity=-1)

    def test_non_admin_cannot_issue(self):
        reg = make_registry()
        with pytest.raises(UnauthorizedError):
            reg.issue(ALICE, ALICE)
        assert reg.total_issued == 0

    @pytest.mark.parametrize("bad", [None, "", "0x1234", "0xPQ" + "zz" * 32, 42, "Q" + "1" * 44])
    def test_invalid_identity(self, bad):
        reg = make_registry()
        with pytest.raises(InvalidIdentityError):
            reg.issue(ADMIN, bad)
        assert reg.total_issued == 0

    def test_invalid_admin_rejected(self):
        with pytest.raises(InvalidIdentityError):
            CredentialRegistry(admin="nobody")

    def test_admin_from_config(self):
        with patch("soulballot.governance.credentials.SOULBALLOT_ADMIN", "0xPQ" + "AD" * 32):
            reg = CredentialRegistry(time_fn=ManualClock())
        assert reg.admin == ADMIN
        assert reg.issue(ADMIN, ALICE) == 0

    def test_explicit_admin_overrides_config(self):
        with patch("soulballot.governance.credentials.SOULBALLOT_ADMIN", ADMIN):
            reg = CredentialRegistry(admin=BOB)
        assert reg.admin == BOB

    def test_missing_admin_rejected(self):
        with patch("soulballot.governance.credentials.SOULBALLOT_ADMIN", ""):
            with pytest.raises(InvalidIdentityError):
                CredentialRegistry()

    def test_issue_emits_notification(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        issued = reg.events.of_type(CredentialIssued)
        assert len(issued) == 1
        assert issued[0].credential_id == 0
        assert issued[0].owner == ALICE
        assert issued[0].to_dict()["event"] == "CredentialIssued"

    def test_failed_issue_emits_nothing(self):
        reg = make_registry()
        with pytest.raises(UnauthorizedError):
            reg.issue(BOB, ALICE)
        assert len(reg.events) == 0


class TestIssueBatch:

    def test_all_succeed(self):
        reg = make_registry()
        results = reg.issue_batch(ADMIN, [ALICE, BOB, CAROL])
        assert [r.credential_id for r in results] == [0, 1, 2]
        assert all(r.ok for r in results)

    def test_partial_failure_does_not_abort(self):
        reg = make_registry(capacity=3)
        reg.issue(ADMIN, ALICE)
        results = reg.issue_batch(ADMIN, [ALICE, BOB, "bogus", CAROL, DAVE])
        assert [r.error for r in results] == [
            "AlreadyIssued", None, "InvalidIdentity", None, "CapacityExceeded",
        ]
        assert results[1].credential_id == 1
        assert results[3].credential_id == 2
        assert reg.holds_credential(BOB)
        assert reg.holds_credential(CAROL)
        assert not reg.holds_credential(DAVE)

    def test_duplicate_within_batch(self):
        reg = make_registry()
        results = reg.issue_batch(ADMIN, [ALICE, ALICE])
        assert results[0].ok
        assert results[1].error == "AlreadyIssued"
        assert reg.total_issued == 1

    def test_non_admin_batch_rejected_whole(self):
        reg = make_registry()
        with pytest.raises(UnauthorizedError):
            reg.issue_batch(ALICE, [BOB, CAROL])
        assert reg.total_issued == 0

    def test_empty_batch(self):
        reg = make_registry()
        assert reg.issue_batch(ADMIN, []) == []

    def test_result_to_dict(self):
        r = IssueResult(identity=ALICE, error="AlreadyIssued")
        d = r.to_dict()
        assert d["ok"] is False
        assert d["error"] == "AlreadyIssued"
        assert d["credentialId"] is None


# ══════════════════════════════════════════════════════════════════════
#  QUERIES
# ══════════════════════════════════════════════════════════════════════

class TestQueries:

    def test_holds_credential(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        assert reg.holds_credential(ALICE)
        assert not reg.holds_credential(BOB)

    def test_credential_of(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        reg.issue(ADMIN, BOB)
        assert reg.credential_of(BOB) == 1
        assert reg.credential_of(CAROL) is None

    def test_queries_tolerate_invalid_identity(self):
        reg = make_registry()
        assert reg.holds_credential(None) is False
        assert reg.credential_of("garbage") is None

    def test_owner_of(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        assert reg.owner_of(0) == ALICE
        with pytest.raises(UnknownCredentialError):
            reg.owner_of(7)

    def test_registry_is_capability(self):
        assert isinstance(make_registry(), CredentialCapability)


# ══════════════════════════════════════════════════════════════════════
#  USAGE MARKING
# ══════════════════════════════════════════════════════════════════════

class TestMarkUsed:

    def test_owner_marks_once(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        assert not reg.is_used_for(5, cid)
        reg.mark_used(ALICE, 5, cid)
        assert reg.is_used_for(5, cid)
        assert not reg.is_used_for(6, cid)

    def test_second_mark_fails(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        reg.mark_used(ALICE, 5, cid)
        with pytest.raises(AlreadyUsedError):
            reg.mark_used(ALICE, 5, cid)
        with pytest.raises(AlreadyUsedError):
            reg.mark_used(ADMIN, 5, cid)

    def test_admin_may_mark(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        reg.mark_used(ADMIN, 0, cid)
        assert reg.is_used_for(0, cid)

    def test_stranger_unauthorized(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        with pytest.raises(UnauthorizedError):
            reg.mark_used(BOB, 0, cid)
        with pytest.raises(UnauthorizedError):
            reg.mark_used(None, 0, cid)
        assert not reg.is_used_for(0, cid)

    def test_unknown_credential_first(self):
        reg = make_registry()
        with pytest.raises(UnknownCredentialError):
            reg.mark_used(BOB, 0, 99)

    def test_mark_emits_notification(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        reg.mark_used(ALICE, 3, cid)
        used = reg.events.of_type(CredentialUsed)
        assert len(used) == 1
        assert used[0].proposal_id == 3
        assert used[0].caller == ALICE


# ══════════════════════════════════════════════════════════════════════
#  NON-TRANSFERABILITY
# ══════════════════════════════════════════════════════════════════════

class TestNonTransferable:

    @pytest.mark.parametrize("caller", [ALICE, ADMIN, BOB])
    def test_transfer_rejected_for_everyone(self, caller):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        with pytest.raises(NonTransferableError):
            reg.transfer(caller, BOB, cid)
        assert reg.owner_of(cid) == ALICE
        assert not reg.holds_credential(BOB)

    @pytest.mark.parametrize("caller", [ALICE, ADMIN, BOB])
    def test_transfer_from_rejected(self, caller):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        with pytest.raises(NonTransferableError):
            reg.transfer_from(caller, ALICE, BOB, cid)
        assert reg.credential_of(ALICE) == cid

    def test_approvals_rejected(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        with pytest.raises(NonTransferableError):
            reg.approve(ALICE, BOB, cid)
        with pytest.raises(NonTransferableError):
            reg.set_approval_for_all(ALICE, BOB, True)

    def test_rejection_even_for_unknown_credential(self):
        reg = make_registry()
        with pytest.raises(NonTransferableError):
            reg.transfer(ALICE, BOB, 42)

    def test_rejection_notified(self):
        reg = make_registry()
        cid = reg.issue(ADMIN, ALICE)
        with pytest.raises(NonTransferableError):
            reg.transfer(ALICE, BOB, cid)
        rejected = reg.events.of_type(TransferRejected)
        assert len(rejected) == 1
        assert rejected[0].operation == "transfer"
        assert rejected[0].to_dict()["outcome"] == "NonTransferable"


# ══════════════════════════════════════════════════════════════════════
#  STATE
# ══════════════════════════════════════════════════════════════════════

class TestCredentialStore:

    def test_injected_store_is_used(self):
        store = CredentialStore()
        reg = make_registry(store=store)
        reg.issue(ADMIN, ALICE)
        assert store.owner_index == {ALICE: 0}
        assert store.issued_count == 1

    def test_snapshot_restore(self):
        reg = make_registry()
        reg.issue(ADMIN, ALICE)
        cid = reg.issue(ADMIN, BOB)
        reg.mark_used(BOB, 2, cid)

        snapshot = reg.to_dict()["state"]
        restored = make_registry(store=CredentialStore.from_dict(snapshot))
        assert restored.credential_of(BOB) == 1
        assert restored.is_used_for(2, 1)
        with pytest.raises(AlreadyIssuedError):
            restored.issue(ADMIN, ALICE)
        assert restored.issue(ADMIN, CAROL) == 2

    def test_inconsistent_index_rejected(self):
        data = {
            "credentials": [{"id": 0, "owner": ALICE, "issuanceIndex": 1, "issuedAt": 0.0}],
            "ownerIndex": {BOB: 0},
            "usage": [],
        }
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    @staticmethod
    def row(cid, owner):
        return {"id": cid, "owner": owner, "issuanceIndex": cid + 1, "issuedAt": 0.0}

    def test_duplicate_owner_rejected(self):
        data = {"credentials": [self.row(0, ALICE), self.row(1, ALICE)]}
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    def test_case_variant_owner_rejected(self):
        variant = TRAD.upper().replace("0X", "0x")
        data = {"credentials": [self.row(0, TRAD), self.row(1, variant)]}
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    def test_owner_canonicalised_on_restore(self):
        store = CredentialStore.from_dict({"credentials": [self.row(0, "0xPQ" + "A1" * 32)]})
        reg = make_registry(store=store)
        assert reg.owner_of(0) == ALICE
        with pytest.raises(AlreadyIssuedError):
            reg.issue(ADMIN, ALICE)

    def test_duplicate_id_rejected(self):
        data = {"credentials": [self.row(0, ALICE), self.row(0, BOB)]}
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    def test_id_gap_rejected(self):
        data = {"credentials": [self.row(0, ALICE), self.row(2, BOB)]}
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    @pytest.mark.parametrize("row", [
        {"id": 0, "owner": ALICE},
        {"id": 0, "owner": "nobody", "issuanceIndex": 1, "issuedAt": 0.0},
    ])
    def test_malformed_row_rejected(self, row):
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict({"credentials": [row]})

    def test_usage_for_unknown_credential_rejected(self):
        data = {
            "credentials": [self.row(0, ALICE)],
            "usage": [{"proposalId": 0, "credentialId": 4}],
        }
        with pytest.raises(InvalidSnapshotError):
            CredentialStore.from_dict(data)

    def test_issue_never_overwrites_existing_id(self):
        bob_cred = Credential(id=2, owner=BOB, issuance_index=3, issued_at=0.0)
        store = CredentialStore(
            credentials={
                0: Credential(id=0, owner=ALICE, issuance_index=1, issued_at=0.0),
                2: bob_cred,
            },
            owner_index={ALICE: 0, BOB: 2},
        )
        reg = make_registry(store=store)
        with pytest.raises(InvalidSnapshotError):
            reg.issue(ADMIN, CAROL)
        assert store.credentials[2] is bob_cred
        assert reg.owner_of(2) == BOB
        assert not reg.holds_credential(CAROL)

    def test_batch_stops_on_corrupt_store(self):
        store = CredentialStore(
            credentials={1: Credential(id=1, owner=ALICE, issuance_index=2, issued_at=0.0)},
            owner_index={ALICE: 1},
        )
        reg = make_registry(store=store)
        with pytest.raises(InvalidSnapshotError):
            reg.issue_batch(ADMIN, [BOB, CAROL])
        assert reg.owner_of(1) == ALICE

    def test_shared_event_log(self):
        log = EventLog()
        seen = []
        log.subscribe(seen.append)
        reg = make_registry(events=log)
        reg.issue(ADMIN, ALICE)
        assert len(seen) == 1
        assert reg.events is log

    def test_failing_subscriber_does_not_break_issue(self):
        log = EventLog()

        def boom(event):
            raise RuntimeError("indexer down")

        log.subscribe(boom)
        reg = make_registry(events=log)
        assert reg.issue(ADMIN, ALICE) == 0
        assert reg.holds_credential(ALICE)
