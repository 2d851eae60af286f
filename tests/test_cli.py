import json

from conftest import StubExtractor, make_services
from triage import cli
from triage.errors import ConfigurationError

MESSAGE = "Hi, this is John Doe. What does the enterprise plan cost?"


def test_prints_extraction_and_reply(capsys):
    services = make_services()

    code = cli.run([MESSAGE], services=services)

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["clientName"] == "John Doe"
    assert out["messageDetails"] == MESSAGE
    assert out["replyMessage"] == "Hi John Doe, thanks for reaching out!"
    assert services.ledger.rows == []
    assert services.notifier.calls == []


def test_export_and_send(capsys):
    services = make_services()

    code = cli.run(
        [MESSAGE, "--operator", "Priya", "--source", "mail", "--export", "--send-to", "whatsapp:+15551234567"],
        services=services,
    )

    assert code == 0
    out = json.loads(capsys.readouterr().out)
    assert out["sid"] == "SM123"
    assert out["export"]["ok"] is True
    (row,) = services.ledger.rows
    assert row.updated_by == "Priya"
    assert row.source.value == "mail"


def test_reads_message_from_file(tmp_path, capsys):
    path = tmp_path / "chat.txt"
    path.write_text(MESSAGE, encoding="utf-8")
    services = make_services()

    assert cli.run(["--file", str(path)], services=services) == 0
    assert services.extractor.calls == [MESSAGE]


def test_export_requires_operator(capsys):
    services = make_services()

    code = cli.run([MESSAGE, "--export"], services=services)

    assert code == 1
    assert "--operator" in capsys.readouterr().err
    assert services.extractor.calls == []


def test_credential_problem_prints_hint(capsys):
    err = ConfigurationError("OpenAI API key is not configured.", missing=["OPENAI_API_KEY"])
    services = make_services(extractor=StubExtractor(error=err))

    code = cli.run([MESSAGE], services=services)

    assert code == 1
    stderr = capsys.readouterr().err
    assert "OpenAI API key is not configured." in stderr
    assert ".env" in stderr


def test_unreadable_file_exits_cleanly(tmp_path, capsys):
    services = make_services()

    code = cli.run(["--file", str(tmp_path / "missing.txt")], services=services)

    assert code == 1
    assert "Could not read message" in capsys.readouterr().err
    assert services.extractor.calls == []
