"""Fixture synthesizer tests."""

import pytest

from tutorgen.llm import FixtureSynthesizer, LLMConnectionError, LLMError, LLMRateLimitError


async def test_first_matching_key_wins():
    """Keys are checked in insertion order."""
    synthesizer = FixtureSynthesizer(responses={"alpha": "A", "beta": "B"})

    assert await synthesizer.generate("beta then alpha") == "A"
    assert await synthesizer.generate("only beta") == "B"


async def test_default_response_and_missing_response():
    """The default answers unmatched prompts; no default raises LLMError."""
    with_default = FixtureSynthesizer(default="fallback")
    without_default = FixtureSynthesizer()

    assert await with_default.generate("anything") == "fallback"
    with pytest.raises(LLMError):
        await without_default.generate("anything")


async def test_callable_response_receives_prompt():
    """Callable responses compute text from the prompt."""
    synthesizer = FixtureSynthesizer(responses={"echo": lambda prompt: prompt.upper()})

    assert await synthesizer.generate("echo me") == "ECHO ME"


async def test_injected_failures_run_out():
    """A failure count fails that many matching calls, then succeeds."""
    synthesizer = FixtureSynthesizer(default="ok", failures={"flaky": 2})

    for _ in range(2):
        with pytest.raises(LLMConnectionError):
            await synthesizer.generate("flaky call")
    assert await synthesizer.generate("flaky call") == "ok"
    assert await synthesizer.generate("steady call") == "ok"


async def test_injected_failure_type_is_configurable():
    """error_type selects the exception raised for injected failures."""
    synthesizer = FixtureSynthesizer(
        default="ok", failures={"x": 1}, error_type=LLMRateLimitError
    )

    with pytest.raises(LLMRateLimitError):
        await synthesizer.generate("x")


async def test_calls_are_recorded():
    """Every call is logged with its prompt, system prompt and temperature."""
    synthesizer = FixtureSynthesizer(default="ok")

    await synthesizer.generate("first", system_prompt="sys", temperature=0.0)
    await synthesizer.generate("second")

    assert [c.prompt for c in synthesizer.calls] == ["first", "second"]
    assert synthesizer.calls[0].system_prompt == "sys"
    assert synthesizer.calls_matching("sec")[0].prompt == "second"
    assert synthesizer.deterministic is True


async def test_from_yaml(tmp_path):
    """Fixture tables load from YAML files."""
    path = tmp_path / "fixtures.yaml"
    path.write_text(
        "default: Generic text.\n"
        "responses:\n"
        "  - match: overview\n"
        "    response: An overview.\n"
        "failures:\n"
        "  flaky: 1\n"
    )

    synthesizer = FixtureSynthesizer.from_yaml(path)

    assert await synthesizer.generate("write the overview") == "An overview."
    assert await synthesizer.generate("something else") == "Generic text."
    with pytest.raises(LLMConnectionError):
        await synthesizer.generate("flaky")


def test_from_yaml_rejects_entries_without_match(tmp_path):
    """Every response entry needs a match key."""
    path = tmp_path / "fixtures.yaml"
    path.write_text("responses:\n  - response: orphan\n")

    with pytest.raises(ValueError, match="match"):
        FixtureSynthesizer.from_yaml(path)


def test_from_yaml_rejects_invalid_yaml(tmp_path):
    """Malformed YAML is reported as ValueError."""
    path = tmp_path / "fixtures.yaml"
    path.write_text("responses: [unclosed\n")

    with pytest.raises(ValueError):
        FixtureSynthesizer.from_yaml(path)
