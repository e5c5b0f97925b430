import pytest

from vat_review.errors import EditNotAllowedError, OperationInProgressError
from vat_review.records import CanonicalRecord
from vat_review.session import WorkingSetContext
from vat_review.validation import run_validation_sync


def _context() -> WorkingSetContext:
    context = WorkingSetContext()
    context.set(
        [
            CanonicalRecord(id="a", transaction_id="T-1", verification_status="0"),
            CanonicalRecord(id="b", transaction_id="T-2", verification_status="1"),
            CanonicalRecord(id="c", transaction_id="T-3", verification_status="2"),
        ],
        filename="sample.csv",
    )
    return context


def test_set_rejects_duplicate_ids():
    context = WorkingSetContext()

    with pytest.raises(ValueError, match="Duplicate record id"):
        context.set([CanonicalRecord(id="x"), CanonicalRecord(id="x")])


def test_get_returns_a_copy():
    context = _context()
    records = context.get()
    records.clear()

    assert len(context) == 3


def test_verifying_a_record_removes_it_from_flagged_view():
    context = _context()
    context.toggle_show_flagged()
    assert [r.id for r in context.visible_records()] == ["a", "c"]

    updated = context.set_status("a", "1")

    assert updated.status_label == "Verified"
    assert context.find("a").status_label == "Verified"
    assert [r.id for r in context.visible_records()] == ["c"]


def test_status_edits_replace_only_one_record():
    context = _context()
    before = context.get()

    context.set_status("b", "2")

    after = context.get()
    assert after[0] is before[0]
    assert after[2] is before[2]
    assert after[1] is not before[1]
    assert before[1].verification_status == "1"


def test_any_status_transition_is_allowed():
    context = _context()
    for code, label in (("2", "Not VAT Registered"), ("0", "Client to Verify"), ("1", "Verified")):
        assert context.set_status("b", code).status_label == label


def test_unknown_status_and_record_are_rejected():
    context = _context()

    with pytest.raises(ValueError):
        context.set_status("a", "9")
    with pytest.raises(KeyError):
        context.set_status("missing", "1")


def test_notes_can_be_edited_outside_edit_mode():
    context = _context()

    context.edit_field("a", "notes", "called client")
    context.set_notes("b", "ok")

    assert context.find("a").notes == "called client"
    assert context.find("b").notes == "ok"


def test_text_fields_require_edit_mode():
    context = _context()

    with pytest.raises(EditNotAllowedError):
        context.edit_field("a", "description", "Stationery")

    assert context.toggle_edit_mode() is True
    context.edit_field("a", "description", "Stationery")
    assert context.find("a").description == "Stationery"


def test_numeric_and_unknown_fields_cannot_be_edited():
    context = _context()
    context.toggle_edit_mode()

    with pytest.raises(ValueError):
        context.edit_field("a", "amount", "100")
    with pytest.raises(ValueError):
        context.edit_field("a", "id", "z")


def test_toggles_do_not_mutate_records():
    context = _context()
    before = context.get()

    context.toggle_edit_mode()
    context.toggle_show_flagged()
    context.toggle_show_flagged()

    assert context.get() == before
    assert context.visible_records() == before


def test_edit_drops_stale_validation_result():
    context = _context()
    run_validation_sync(context)
    assert set(context.validation_results) == {"a", "b", "c"}

    context.set_notes("a", "checked")

    assert set(context.validation_results) == {"b", "c"}


def test_clear_resets_everything():
    context = _context()
    context.toggle_edit_mode()
    context.toggle_show_flagged()

    context.clear()

    assert context.get() == []
    assert context.filename == ""
    assert context.edit_mode is False
    assert context.show_flagged_only is False


def test_only_one_operation_at_a_time():
    context = _context()

    with context.operation("import"):
        assert context.is_busy
        with pytest.raises(OperationInProgressError):
            with context.operation("save"):
                pass

    assert not context.is_busy


def test_operation_guard_is_released_on_error():
    context = _context()

    with pytest.raises(RuntimeError):
        with context.operation("save"):
            raise RuntimeError("boom")

    assert not context.is_busy


def test_adopt_saved_rekeys_records_and_results():
    context = _context()
    context.toggle_show_flagged()
    run_validation_sync(context)
    saved = [
        CanonicalRecord(
            id=f"s-{r.id}",
            transaction_id=r.transaction_id,
            verification_status=r.verification_status,
            import_id="imp",
        )
        for r in context.get()
    ]

    context.adopt_saved(saved)

    assert [r.id for r in context.get()] == ["s-a", "s-b", "s-c"]
    assert context.find("s-a").import_id == "imp"
    assert set(context.validation_results) == {"s-a", "s-b", "s-c"}
    assert context.validation_results["s-a"].record_id == "s-a"
    assert context.filename == "sample.csv"
    assert context.show_flagged_only is True


def test_adopt_saved_requires_the_same_size():
    context = _context()

    with pytest.raises(ValueError):
        context.adopt_saved([CanonicalRecord(id="x")])
