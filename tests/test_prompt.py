"""Tests for prompt templates."""

import pytest

from pocket_rag.config import DEFAULT_RAG_TEMPLATE, DEFAULT_TRANSLATION_TEMPLATE
from pocket_rag.prompt import PromptTemplate, fill_slots


def test_render_substitutes_both_slots():
    template = PromptTemplate("Context: {context}\nQuestion: {query}")

    assert template.render("room 3", "where?") == "Context: room 3\nQuestion: where?"
    assert template.uses_context


def test_braces_in_values_are_literal():
    template = PromptTemplate("{context} | {query}")

    rendered = template.render("json {query} here", "what is {context}?")

    assert rendered == "json {query} here | what is {context}?"


def test_passthrough():
    template = PromptTemplate.passthrough()

    assert template.render("ignored", "Translate this") == "Translate this"
    assert not template.uses_context


def test_default_template_is_valid():
    rendered = PromptTemplate(DEFAULT_RAG_TEMPLATE).render("fire extinguisher is in room 3", "Where?")

    assert "Here are the things I want to remember: fire extinguisher is in room 3" in rendered
    assert rendered.endswith("answer the following question the user has: Where?")


def test_missing_query_slot_rejected():
    with pytest.raises(ValueError):
        PromptTemplate("Only {context}")


def test_unknown_slot_rejected():
    with pytest.raises(ValueError):
        PromptTemplate("{context} {query} {language}")


def test_fill_slots_leaves_unknown_slots():
    assert fill_slots("{a} and {b}", a="x") == "x and {b}"


def test_translation_prompt():
    prompt = fill_slots(DEFAULT_TRANSLATION_TEMPLATE, language="German", text="Hello")

    assert prompt.startswith("Translate the following text to German.")
    assert 'Text to translate: "Hello"' in prompt
    assert prompt.endswith("Translation:")
