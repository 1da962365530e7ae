from __future__ import annotations

from types import SimpleNamespace

from services.assistant_service import (
    NO_RESPONSE,
    AssistantService,
    static_token_verifier,
)


class FakeModel:
    def __init__(self, response) -> None:
        self.response = response
        self.calls: list[tuple] = []

    def generate_content(self, contents, **kwargs):
        self.calls.append((contents, kwargs))
        return self.response


def _response(*parts):
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=list(parts)))])


def _service(model: FakeModel, **kwargs) -> tuple[AssistantService, list[tuple]]:
    built: list[tuple] = []

    def factory(name, system_instruction):
        built.append((name, system_instruction))
        return model

    service = AssistantService(
        verify_token=static_token_verifier("good"),
        model_factory=factory,
        **kwargs,
    )
    return service, built


def test_missing_key_is_reported_first():
    service = AssistantService(verify_token=static_token_verifier("good"))

    assert service.handle({}, "Bearer good") == (500, {"error": "GOOGLE_AI_API_KEY is not configured"})


def test_bad_token_is_unauthorized():
    service, _ = _service(FakeModel(_response()))

    assert service.handle({"action": "chat"}, None) == (401, {"error": "Unauthorized"})
    assert service.handle({"action": "chat"}, "Bearer nope") == (401, {"error": "Unauthorized"})


def test_chat_maps_roles_for_gemini():
    model = FakeModel(_response(SimpleNamespace(text="Hello there")))
    service, built = _service(model)

    status, payload = service.handle(
        {
            "action": "chat",
            "messages": [
                {"role": "user", "content": "Hi"},
                {"role": "assistant", "content": "Hey"},
                {"role": "user", "content": "How are you?"},
            ],
        },
        "Bearer good",
    )

    assert status == 200
    assert payload == {"reply": "Hello there"}
    assert built[0][0] == "gemini-2.0-flash"
    contents = model.calls[0][0]
    assert [item["role"] for item in contents] == ["user", "model", "user"]
    assert contents[2]["parts"] == ["How are you?"]


def test_empty_model_output_uses_placeholder():
    service, _ = _service(FakeModel(_response()))

    assert service.handle({"messages": []}, "Bearer good") == (200, {"reply": NO_RESPONSE})


def test_generate_image_returns_data_uri():
    inline = SimpleNamespace(data=b"\x89PNG", mime_type="image/png")
    model = FakeModel(_response(SimpleNamespace(text="A fox"), SimpleNamespace(text=None, inline_data=inline)))
    service, built = _service(model)

    status, payload = service.handle(
        {"action": "generate-image", "messages": [{"role": "user", "content": "a fox"}]},
        "Bearer good",
    )

    assert status == 200
    assert payload["reply"] == "A fox"
    assert payload["image"] == "data:image/png;base64,iVBORw=="
    assert built[0] == ("gemini-2.0-flash-exp-image-generation", None)
    assert model.calls[0][0] == "a fox"
    assert model.calls[0][1]["generation_config"] == {"response_modalities": ["TEXT", "IMAGE"]}


def test_unknown_action_is_rejected():
    service, _ = _service(FakeModel(_response()))

    assert service.handle({"action": "dance"}, "Bearer good") == (400, {"error": "Unknown action"})


def test_model_failure_returns_500():
    class Broken:
        def generate_content(self, *args, **kwargs):
            raise RuntimeError("model offline")

    service = AssistantService(
        verify_token=static_token_verifier("good"),
        model_factory=lambda name, system: Broken(),
    )

    assert service.handle({"action": "chat"}, "Bearer good") == (500, {"error": "model offline"})


def test_openai_chat_completion():
    captured: dict[str, object] = {}

    def create(**kwargs):
        captured.update(kwargs)
        message = SimpleNamespace(content="  from gpt  ")
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    service = AssistantService(
        "openai",
        verify_token=static_token_verifier("good"),
        openai_client=client,
    )

    status, payload = service.handle(
        {"action": "chat", "messages": [{"role": "user", "content": "Hi"}]},
        "Bearer good",
    )

    assert (status, payload) == (200, {"reply": "from gpt"})
    assert captured["model"] == "gpt-3.5-turbo"
    assert captured["messages"][0]["role"] == "system"
    assert captured["messages"][1] == {"role": "user", "content": "Hi"}
    assert service.handle({"action": "generate-image"}, "Bearer good")[0] == 400
