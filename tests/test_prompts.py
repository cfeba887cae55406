from design_generator.service.prompts import (
    DESIGN_PROMPTS,
    GENERIC_SYSTEM_PROMPT,
    OUTPUT_CONTRACT,
    compose_generation_prompt,
    compose_modification_prompt,
    resolve_design_prompt,
)

from conftest import make_spec


def test_login_hint_uses_login_template():
    prompt = compose_generation_prompt("login", "Create a modern login page")
    assert prompt.system.startswith(DESIGN_PROMPTS["login"]["system"])
    assert GENERIC_SYSTEM_PROMPT not in prompt.system
    assert OUTPUT_CONTRACT in prompt.system
    assert prompt.user == "Create a modern login page"


def test_unknown_or_missing_hint_falls_back_to_generic():
    for hint in (None, "", "spaceship-cockpit"):
        prompt = compose_generation_prompt(hint, "Something")
        assert prompt.system.startswith(GENERIC_SYSTEM_PROMPT)
        assert OUTPUT_CONTRACT in prompt.system


def test_registry_matches_archetype_type():
    assert resolve_design_prompt("landing-page") is DESIGN_PROMPTS["landing"]
    assert resolve_design_prompt("Dashboard") is DESIGN_PROMPTS["dashboard"]


def test_prompt_keeps_roles_separate():
    messages = compose_generation_prompt("dashboard", "Sales overview").to_messages()
    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[1]["content"] == "Sales overview"
    assert "Sales overview" not in messages[0]["content"]


def test_modification_prompt_embeds_full_prior_design():
    prior = make_spec(
        "spec-42",
        type="login-screen",
        components=[{"id": "c1", "type": "button", "properties": {"text": "Sign In"}}],
    )
    prompt = compose_modification_prompt(prior, "Make the button red")
    assert prompt.system.startswith(DESIGN_PROMPTS["login"]["system"])
    assert "Make the button red" in prompt.user
    assert prior.to_json() in prompt.user
    assert "complete modified design" in prompt.user
