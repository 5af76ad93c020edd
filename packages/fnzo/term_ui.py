"""Interactive prompts for the CLI: replacement-category picker and yes/no confirm.

Kept apart from the CLI command bodies so the prompts can be tested in
isolation with a pipe input.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import WordCompleter
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.validation import ValidationError, Validator


def _session_like(session: PromptSession | None, kb: KeyBindings) -> PromptSession:
    if session is None:
        return PromptSession(key_bindings=kb)
    return PromptSession(
        input=getattr(session, "input", None),
        output=getattr(session, "output", None),
        key_bindings=kb,
    )


def select_replacement_category(
    choices: Sequence[str] | Iterable[str],
    *,
    default: str = "",
    message: str = "Move transactions to (Tab to complete, Esc to cancel): ",
    session: PromptSession | None = None,
) -> str | None:
    """Prompt for one of ``choices`` (case-insensitive, completion on Tab).

    Returns the canonical choice, or ``None`` when canceled with Esc/Ctrl+C.
    A unique prefix is accepted and expanded to its choice.
    """

    words = list(choices)
    canonical = {w.lower(): w for w in words}

    def _resolve(text: str) -> str | None:
        lower = text.strip().lower()
        if not lower:
            return None
        if lower in canonical:
            return canonical[lower]
        hits = [w for w in words if w.lower().startswith(lower)]
        return hits[0] if len(hits) == 1 else None

    kb = KeyBindings()

    @kb.add("escape", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    @kb.add("c-c", eager=True)
    def _(event) -> None:  # pragma: no cover - exercised indirectly
        event.app.exit(result=None)

    class _ChoiceValidator(Validator):
        def validate(self, document) -> None:
            if _resolve(document.text) is None:
                raise ValidationError(message="Pick one of the listed categories")

    sess = _session_like(session, kb)
    value = sess.prompt(
        message,
        default=default,
        completer=WordCompleter(words, ignore_case=True, match_middle=True, sentence=True),
        validator=_ChoiceValidator(),
        validate_while_typing=False,
        key_bindings=kb,
    )
    if value is None:
        return None
    return _resolve(value)


def confirm(message: str, *, session: PromptSession | None = None) -> bool:
    """Yes/no prompt; anything but ``y``/``yes`` is a no."""

    kb = KeyBindings()
    sess = _session_like(session, kb)
    answer = sess.prompt(f"{message} [y/N]: ", key_bindings=kb)
    return (answer or "").strip().lower() in {"y", "yes"}


__all__ = ["select_replacement_category", "confirm"]
