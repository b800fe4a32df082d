import logging

from bamcover.progress import ProcessStatus


def test_process_status_logs_every_n(caplog):
    logger = logging.getLogger("bamcover.test_progress")
    status = ProcessStatus("read(s)", logger, every=2)
    with caplog.at_level(logging.INFO, logger="bamcover.test_progress"):
        for _ in range(5):
            status.update_status()
        status.set_info("alignment(s)")
        assert status.finish() == 5
    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["Processed 2 read(s)...", "Processed 4 read(s)...", "Total 5 alignment(s)"]

    status.reset()
    assert status.update_status() == 1


def test_process_status_without_logger():
    status = ProcessStatus("record(s)")
    status.update_status()
    assert status.finish() == 1
