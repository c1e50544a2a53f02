import logging

import pytest

from baredeploy.events import SUCCESS, DeploymentRecord, Outcome, close_run_log, open_run_log
from baredeploy.ids import new_run_id
from baredeploy.state import get_run_log_path


def test_record_keeps_order_and_notifies_listeners():
    seen = []
    record = DeploymentRecord(run_id="20240101_000000", listeners=[seen.append])

    record.info("SyncLocalRepo", "cloning")
    record.success("SyncLocalRepo", "cloned")
    record.warning("ValidateDeployment", "port 80 closed")

    assert [e.outcome for e in record.events] == [Outcome.INFO, Outcome.SUCCESS, Outcome.WARNING]
    assert seen == record.events
    assert record.warnings == ["port 80 closed"]
    assert record.stages(Outcome.SUCCESS) == ["SyncLocalRepo"]


def test_unknown_outcome_rejected():
    record = DeploymentRecord(run_id="x")
    with pytest.raises(ValueError):
        record.emit("Stage", "fatal", "nope")


def test_run_log_file(tmp_path, monkeypatch):
    monkeypatch.setenv("BAREDEPLOY_HOME", str(tmp_path))
    run_id = new_run_id()
    log_path = get_run_log_path(run_id)
    assert log_path.parent == tmp_path / "logs"
    assert log_path.name == f"deploy_{run_id}.log"

    handler = open_run_log(log_path)
    try:
        record = DeploymentRecord(run_id=run_id)
        record.success("Done", "shop deployed")
        record.error("ConfigureProxy", "nginx -t failed")
        logging.getLogger("baredeploy.remote.ssh").debug("ssh deploy@host: echo connected")
    finally:
        close_run_log(handler)

    lines = log_path.read_text().splitlines()
    assert lines[0].endswith("SUCCESS: [Done] shop deployed")
    assert lines[1].endswith("ERROR: [ConfigureProxy] nginx -t failed")
    assert lines[2].endswith("DEBUG: ssh deploy@host: echo connected")
    assert lines[0][:4].isdigit() and "T" in lines[0].split()[0]
    assert logging.getLevelName(SUCCESS) == "SUCCESS"
