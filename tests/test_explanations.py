import json

import httpx

from cbtprep.utils.explanations import Explainer, FALLBACK_EXPLANATION, build_prompt


def _explainer(handler, api_key="key"):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return Explainer(api_url="https://ai.test/v1/chat/completions", api_key=api_key, model="m", client=client)


def test_prompt_mentions_answers():
    prompt = build_prompt("What is 2+2?", "B", "C", "Mathematics")
    assert "Correct answer: B" in prompt
    assert "The student chose C." in prompt
    assert "did not answer" in build_prompt("Q", "A", None, "Physics")


def test_returns_model_text():
    seen = []

    def handler(request):
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": "  Because 2+2=4.  "}}]})

    assert _explainer(handler).explain("What is 2+2?", "B", "C", "Mathematics") == "Because 2+2=4."
    assert seen[0]["model"] == "m"


def test_without_key_no_request_is_made():
    calls = []
    explainer = _explainer(lambda r: calls.append(r) or httpx.Response(200), api_key="")
    assert explainer.explain("Q", "A", None, "Physics") == FALLBACK_EXPLANATION
    assert calls == []


def test_errors_fall_back():
    assert _explainer(lambda r: httpx.Response(503)).explain("Q", "A", "B", "Physics") == FALLBACK_EXPLANATION
    assert _explainer(lambda r: httpx.Response(200, json={"choices": []})).explain(
        "Q", "A", "B", "Physics"
    ) == FALLBACK_EXPLANATION


def test_shared_explainer_is_closed_on_shutdown():
    from cbtprep.utils.explanations import close_explainer, get_explainer

    explainer = get_explainer()
    assert get_explainer() is explainer
    close_explainer()
    assert explainer._client.is_closed
