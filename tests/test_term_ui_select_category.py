import contextlib

from fnzo.models import Kind
from fnzo.term_ui import confirm, select_replacement_category
from fnzo.transactions import DEFAULT_CATEGORIES
from prompt_toolkit import PromptSession
from prompt_toolkit.input import create_pipe_input
from prompt_toolkit.output import DummyOutput

EXPENSE_NAMES = list(DEFAULT_CATEGORIES[Kind.EXPENSE])


@contextlib.contextmanager
def pipe_session():
    with create_pipe_input() as pipe:
        sess = PromptSession(input=pipe, output=DummyOutput())
        yield pipe, sess


def test_enter_accepts_prefilled_default():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        result = select_replacement_category(EXPENSE_NAMES, default="Shopping", session=sess)
        assert result == "Shopping"


def test_exact_name_is_case_insensitive_and_canonicalized():
    with pipe_session() as (pipe, sess):
        # Ctrl-A (home), Ctrl-K (kill to end), type, Enter
        pipe.send_text("\x01\x0bhealthcare\r")
        result = select_replacement_category(EXPENSE_NAMES, default="Other", session=sess)
        assert result == "Healthcare"


def test_unique_prefix_expands_to_choice():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bTrans\r")
        result = select_replacement_category(EXPENSE_NAMES, default="Other", session=sess)
        assert result == "Transport"


def test_ambiguous_prefix_is_rejected_until_completed():
    # "E" matches Entertainment and Education; the validator keeps the prompt open
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x01\x0bE\r")
        pipe.send_text("du\r")
        result = select_replacement_category(EXPENSE_NAMES, default="Other", session=sess)
        assert result == "Education"


def test_ctrl_c_cancels_with_none():
    with pipe_session() as (pipe, sess):
        pipe.send_text("\x03")
        result = select_replacement_category(EXPENSE_NAMES, default="Other", session=sess)
        assert result is None


def test_confirm_accepts_yes_only():
    with pipe_session() as (pipe, sess):
        pipe.send_text("Yes\r")
        assert confirm("Merge?", session=sess) is True
    with pipe_session() as (pipe, sess):
        pipe.send_text("\r")
        assert confirm("Merge?", session=sess) is False
