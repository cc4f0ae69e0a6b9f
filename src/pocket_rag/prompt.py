import re

_SLOT = re.compile(r"\{(\w+)\}")
_ALLOWED_SLOTS = {"context", "query"}


def fill_slots(template: str, **values: str) -> str:
    """
    Replace ``{name}`` slots in a single pass.

    Inserted values are never re-scanned, so braces in user text survive
    literally. Slots without a value are left untouched.
    """
    return _SLOT.sub(lambda match: values.get(match.group(1), match.group(0)), template)


class PromptTemplate:
    """
    Prompt with a ``{context}`` and a ``{query}`` slot.

    Rendering is literal substitution: braces inside the context or query
    are inserted as-is. A template without ``{context}`` is a pass-through
    template that ignores retrieved context.
    """

    def __init__(self, template: str):
        slots = set(_SLOT.findall(template))
        unknown = slots - _ALLOWED_SLOTS
        if unknown:
            raise ValueError(f"Unknown prompt slots: {sorted(unknown)}")
        if "query" not in slots:
            raise ValueError("Prompt template must contain a {query} slot")

        self.template = template
        self.uses_context = "context" in slots

    @classmethod
    def passthrough(cls) -> "PromptTemplate":
        return cls("{query}")

    def render(self, context: str, query: str) -> str:
        return fill_slots(self.template, context=context, query=query)

    def __repr__(self) -> str:
        return f"PromptTemplate({self.template!r})"
