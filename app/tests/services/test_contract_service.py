import pytest

from app.core.errors import (
    ConcurrentUpdateError,
    ContractNotFoundError,
    ContractValidationError,
    LogisticAlreadyAddedError,
    LogisticNotFoundError,
)
from app.schemas.contracts import ContractLogRequest, ContractStatePatch
from app.services.contract_service import ContractService
from app.services.contract_store import ContractLogStore
from app.services.notification_service import NotificationService

C = "0xC0ffee0000000000000000000000000000000001"
E = "0xE000000000000000000000000000000000000001"
I = "0x1000000000000000000000000000000000000002"
L1 = "0xL000000000000000000000000000000000000001"
L2 = "0xL000000000000000000000000000000000000002"
ADMIN = "0xAdA0000000000000000000000000000000000009"


def req(action, account=E, tx=None, **kw):
    return ContractLogRequest(contractAddress=C, action=action, txHash=tx or f"0x{action}", account=account, **kw)


@pytest.fixture
def svc(recorder):
    return ContractService(notifier=recorder, admin_addresses=[ADMIN])


def deploy(svc, db):
    return svc.add_contract_log(db, req("deploy", exporter=E, importer=I))


# ─────────────────────────────────────────────
# LEDGER + PROJECTION
# ─────────────────────────────────────────────

def test_history_keeps_every_action_in_call_order(db, svc):
    actions = ["deploy", "deposit", "approveExporter", "deposit", "finalize"]
    for n, a in enumerate(actions):
        svc.add_contract_log(db, req(a, tx=f"0x{n}"))

    rec = svc.get_contract_by_id(db, C)
    assert len(rec.history) == len(actions)
    assert [h.action for h in rec.history] == actions
    assert [h.txHash for h in rec.history] == [f"0x{n}" for n in range(len(actions))]


def test_first_action_creates_record(db, svc):
    entry = svc.add_contract_log(db, req("deposit"))

    rec = svc.get_contract_by_id(db, C)
    assert rec.contractAddress == C
    assert rec.state.status == "deposit"
    assert rec.state.currentStage == "1"
    assert rec.state.lastUpdated == entry.timestamp
    assert rec.history[0].txHash == "0xdeposit"


def test_end_to_end_deploy_deposit_and_logistics(db, svc):
    deploy(svc, db)
    rec = svc.get_contract_by_id(db, C)
    assert rec.state.exporter == E
    assert rec.state.importer == I
    assert rec.state.logistics == []
    assert rec.state.status == "deploy"
    assert rec.state.currentStage == "1"

    svc.add_contract_log(db, req("deposit", account=I, extra={"stage": "2"}))
    rec = svc.get_contract_by_id(db, C)
    assert rec.state.currentStage == "2"
    assert rec.state.status == "deposit"
    assert rec.state.exporter == E

    svc.add_contract_log(db, req("addLogistic", extra={"logistic": L1}))
    assert svc.get_contract_by_id(db, C).state.logistics == [L1]

    with pytest.raises(LogisticAlreadyAddedError) as exc:
        svc.add_contract_log(db, req("addLogistic", tx="0xdup", extra={"logistic": L1}))
    assert str(exc.value) == f"Logistic {L1} already added"

    rec = svc.get_contract_by_id(db, C)
    assert rec.state.logistics == [L1]
    assert rec.state.status == "addLogistic"
    assert len(rec.history) == 3


def test_remove_missing_logistic_leaves_state_unchanged(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, req("addLogistic", extra={"logistic": L1}))
    before = svc.get_contract_by_id(db, C)

    with pytest.raises(LogisticNotFoundError) as exc:
        svc.add_contract_log(db, req("removeLogistic", extra={"logistic": L2}))
    assert str(exc.value) == f"Logistic {L2} not found"

    after = svc.get_contract_by_id(db, C)
    assert after == before


def test_remove_then_add_again(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, req("addLogistic", tx="0x1", extra={"logistic": L1}))
    svc.add_contract_log(db, req("addLogistic", tx="0x2", extra={"logistic": L2}))
    svc.add_contract_log(db, req("removeLogistic", tx="0x3", extra={"logistic": L1}))
    assert svc.get_contract_by_id(db, C).state.logistics == [L2]

    svc.add_contract_log(db, req("addLogistic", tx="0x4", extra={"logistic": L1}))
    assert svc.get_contract_by_id(db, C).state.logistics == [L2, L1]


def test_remove_on_unknown_contract_fails_without_creating_it(db, svc):
    with pytest.raises(LogisticNotFoundError):
        svc.add_contract_log(db, req("removeLogistic", extra={"logistic": L1}))
    assert svc.get_contract_by_id(db, C) is None


def test_extra_role_wins_over_stale_state(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, req("approveImporter", exporter="0xSTALE", extra={"exporter": "0xFRESH"}))
    assert svc.get_contract_by_id(db, C).state.exporter == "0xFRESH"


def test_actions_are_not_order_checked(db, svc):
    svc.add_contract_log(db, req("finalize"))
    svc.add_contract_log(db, req("deploy"))
    assert svc.get_contract_by_id(db, C).state.status == "deploy"


def test_fallback_fills_blank_role_from_deploy_declaration(db, svc):
    svc.add_contract_log(db, req("deploy", extra={"exporter": E, "importer": I}))
    svc.update_contract_state(db, C, ContractStatePatch(exporter=""))
    assert svc.get_contract_by_id(db, C).state.exporter == ""

    svc.add_contract_log(db, req("deposit"))
    assert svc.get_contract_by_id(db, C).state.exporter == E


# ─────────────────────────────────────────────
# VALIDATION
# ─────────────────────────────────────────────

class UntouchableStore(ContractLogStore):
    def get(self, db, contract_address):
        raise AssertionError("store must not be read for invalid input")


@pytest.mark.parametrize("missing", ["contractAddress", "action", "txHash", "account"])
def test_missing_required_field_is_rejected_before_store_access(recorder, missing):
    body = {"contractAddress": C, "action": "deploy", "txHash": "0x1", "account": E}
    body[missing] = ""
    svc = ContractService(store=UntouchableStore(), notifier=recorder, admin_addresses=[])

    with pytest.raises(ContractValidationError) as exc:
        svc.add_contract_log(None, ContractLogRequest(**body))
    assert str(exc.value).endswith(f": {missing}")
    assert recorder.sent == []


def test_membership_action_requires_target(recorder):
    svc = ContractService(store=UntouchableStore(), notifier=recorder, admin_addresses=[])
    with pytest.raises(ContractValidationError):
        svc.add_contract_log(None, req("addLogistic", extra={}))


@pytest.mark.parametrize(
    "extra",
    [{"logistic": 7}, {"exporter": 42}, {"insurance": ["0xA"]}, {"logistics": 5}, {"logistics": [None]}],
)
def test_non_address_extra_values_are_rejected_before_store_access(recorder, extra):
    svc = ContractService(store=UntouchableStore(), notifier=recorder, admin_addresses=[])
    with pytest.raises(ContractValidationError):
        svc.add_contract_log(None, req("deploy", extra=extra))


def test_scalar_and_list_logistics_in_extra_are_accepted(db, svc):
    svc.add_contract_log(db, req("deploy", extra={"logistics": L1}))
    svc.add_contract_log(db, req("deposit", extra={"logistics": [L1, L2]}))
    assert svc.get_contract_by_id(db, C).state.logistics == [L1, L2]


# ─────────────────────────────────────────────
# NOTIFICATIONS
# ─────────────────────────────────────────────

def test_fan_out_reaches_admins_and_participants_except_actor(db, svc, recorder):
    deploy(svc, db)

    recipients = [n["recipient"] for n in recorder.sent]
    assert recipients == [ADMIN.lower(), I.lower()]

    first = recorder.sent[0]
    assert first["executor"] == E
    assert first["kind"] == "agreement"
    assert first["title"] == "Contract Action: deploy"
    assert first["message"] == f'Contract {C} has a new action "deploy" by {E}.'
    assert first["extra"]["data"] == {"contractAddress": C, "action": "deploy", "txHash": "0xdeploy"}


def test_fan_out_includes_logistics_members(db, svc, recorder):
    deploy(svc, db)
    svc.add_contract_log(db, req("addLogistic", extra={"logistic": L1}))
    recorder.sent.clear()

    svc.add_contract_log(db, req("finalize", account=ADMIN))
    recipients = [n["recipient"] for n in recorder.sent]
    # admin acted, so only participants are notified
    assert recipients == [E.lower(), I.lower(), L1.lower()]


def test_notification_failure_does_not_fail_the_action(db, failing_notifier):
    svc = ContractService(notifier=failing_notifier, admin_addresses=[ADMIN])

    entry = svc.add_contract_log(db, req("deploy", exporter=E, importer=I))

    assert entry.action == "deploy"
    assert failing_notifier.attempts == 2
    rec = svc.get_contract_by_id(db, C)
    assert len(rec.history) == 1
    assert rec.state.status == "deploy"


def test_notifications_are_persisted(db):
    notifier = NotificationService()
    svc = ContractService(notifier=notifier, admin_addresses=[ADMIN])
    deploy(svc, db)

    rows = notifier.list_for_user(db, I)
    assert len(rows) == 1
    assert rows[0].type == "agreement"
    assert rows[0].executor_id == E
    assert rows[0].read is False
    assert rows[0].extra_json["txHash"] == "0xdeploy"
    assert len(notifier.list_for_user(db, ADMIN)) == 1


# ─────────────────────────────────────────────
# READ PATHS
# ─────────────────────────────────────────────

def test_step_status(db, svc):
    assert svc.get_contract_step_status(db, C) is None

    for a in ["deploy", "deposit", "approveImporter", "finalize"]:
        svc.add_contract_log(db, req(a))

    res = svc.get_contract_step_status(db, C)
    assert res.stepStatus.approveExporter is False
    assert res.stepStatus.finalize is True
    assert res.lastAction.action == "finalize"


def test_contracts_by_user_are_annotated_with_role(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, ContractLogRequest(
        contractAddress="0xOTHER", action="deploy", txHash="0x9", account=I,
        exporter=I, importer="0xSOMEONE", extra={"logistics": [L1]},
    ))

    mine = svc.get_contracts_by_user(db, E.lower())
    assert [(c.contractAddress, c.role) for c in mine] == [(C, "Exporter")]

    both = svc.get_contracts_by_user(db, I)
    assert sorted((c.contractAddress, c.role) for c in both) == sorted([(C, "Importer"), ("0xOTHER", "Exporter")])

    logistic = svc.get_contracts_by_user(db, L1)
    assert [(c.contractAddress, c.role) for c in logistic] == [("0xOTHER", "Logistics")]

    assert svc.get_contracts_by_user(db, "0xNOBODY") == []


def test_get_all_contracts(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, ContractLogRequest(contractAddress="0xOTHER", action="deploy", txHash="0x9", account=I))
    assert {c.contractAddress for c in svc.get_all_contracts(db)} == {C, "0xOTHER"}


def test_update_state_requires_existing_contract(db, svc):
    with pytest.raises(ContractNotFoundError) as exc:
        svc.update_contract_state(db, C, ContractStatePatch(currentStage="5"))
    assert str(exc.value) == "Contract not found"


# ─────────────────────────────────────────────
# INTEGRITY
# ─────────────────────────────────────────────

def test_verify_and_rebuild(db, svc):
    deploy(svc, db)
    svc.add_contract_log(db, req("deposit", extra={"stage": "2"}))
    svc.add_contract_log(db, req("addLogistic", extra={"logistic": L1}))

    report = svc.verify_contract(db, C)
    assert report.entries == 3
    assert report.chainValid is True
    assert report.stateConsistent is True
    assert svc.rebuild_state(db, C) == svc.get_contract_by_id(db, C).state

    svc.update_contract_state(db, C, ContractStatePatch(currentStage="9"))
    assert svc.verify_contract(db, C).stateConsistent is False
    assert svc.verify_contract(db, "0xMISSING") is None


def test_stale_writer_is_rejected(db, svc):
    deploy(svc, db)
    store = svc.store
    stale = store.get(db, C)

    svc.add_contract_log(db, req("deposit"))

    with pytest.raises(ConcurrentUpdateError):
        svc.store.update(
            db, C,
            state=stale.record.state,
            entry=stale.record.history[0],
            expected_version=stale.version,
            seq=stale.head_seq + 1,
            prev_hash=stale.head_hash,
        )

    rec = svc.get_contract_by_id(db, C)
    assert [h.action for h in rec.history] == ["deploy", "deposit"]
    assert rec.state.status == "deposit"
