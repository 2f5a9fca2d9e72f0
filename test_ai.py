from unittest.mock import Mock

from offplan.ai import report_generator


def test_generate_ai_report_uses_client_and_returns_content():
    # Arrange
    fake_client = Mock()
    fake_response = Mock()
    fake_choice = Mock()
    fake_message = Mock()
    fake_message.content = "Sample AI report content"
    fake_choice.message = fake_message
    fake_response.choices = [fake_choice]
    fake_client.chat.completions.create.return_value = fake_response

    summary = {"property": {"price": 1_850_000}, "timeline": {"construction_months": 33}}
    exits = [{"Label": "Handover", "ROE": 24.1, "Basis": "net"}]

    # Act
    report = report_generator.generate_ai_report(summary, exits, client=fake_client)

    # Assert
    assert "Sample AI report content" in report
    fake_client.chat.completions.create.assert_called_once()
    kwargs = fake_client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == report_generator.MODEL
    prompt = kwargs["messages"][-1]["content"]
    assert "1850000" in prompt
    assert "Handover" in prompt


def test_generate_ai_report_env_api_key(monkeypatch):
    # Arrange
    class DummyClient:
        def __init__(self, api_key=None):
            self.api_key = api_key
            self.chat = Mock()
            self.chat.completions = Mock()
            self.chat.completions.create = Mock(return_value=Mock(choices=[Mock(message=Mock(content="ok"))]))

    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    monkeypatch.setattr(report_generator, "OpenAI", DummyClient)

    out = report_generator.generate_ai_report({}, [])
    assert out == "ok"


def test_generate_ai_report_missing_key_raises(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    try:
        report_generator.generate_ai_report({}, [])
        assert False, "Expected ValueError when API key is missing"
    except ValueError as e:
        assert "Missing OpenAI API key" in str(e)
