"""Tests del agregado LabOrder: registro de resultados, ciclo de vida y resumen."""

from uuid import uuid4

import pytest

from app.lab.catalog import ParameterDefinition, TestDefinition
from app.lab.classifier import Classification
from app.lab.errors import (
    EmptyTestSelection,
    IllegalTransition,
    OrderAlreadyFinalized,
    ParameterRequiredForTest,
    UnknownDetail,
    UnknownParameter,
    UnknownResult,
)
from app.lab.lifecycle import LabOrderStatus
from app.lab.order import LabPriority, create_order


@pytest.fixture
def order(glucose_test, cbc_test):
    return create_order("LAB-20261018-0001", uuid4(), [glucose_test, cbc_test])


def test_create_order(order):
    assert order.status == LabOrderStatus.PENDING
    assert order.priority == LabPriority.ROUTINE
    assert order.total_amount_minor == 3300
    assert [d.test.code for d in order.details] == ["BIO-001", "HEM-001"]
    assert order.completed_at is None and order.completed_by is None
    assert len(order.missing_results()) == 3


def test_create_order_requires_tests():
    with pytest.raises(EmptyTestSelection):
        create_order("LAB-20261018-0001", uuid4(), [])


def test_record_result_classifies_and_advances(order, glucose):
    detail = order.details[0]
    classification = order.record_result(detail.id, glucose.id, "130")

    assert classification == Classification.ABNORMAL
    assert order.status == LabOrderStatus.PROCESSING
    assert order.classification_for(detail.id, glucose.id) == Classification.ABNORMAL


def test_implicit_advance_happens_once(order, glucose, hemoglobin):
    order.transition_status(LabOrderStatus.SAMPLES_COLLECTED)
    order.record_result(order.details[0].id, glucose.id, "90")
    assert order.status == LabOrderStatus.PROCESSING

    order.record_result(order.details[1].id, hemoglobin.id, "13")
    assert order.status == LabOrderStatus.PROCESSING


def test_recording_twice_overwrites(order, glucose):
    detail = order.details[0]
    order.record_result(detail.id, glucose.id, "130")
    order.record_result(detail.id, glucose.id, "95", notes="repetido")

    assert len(detail.results) == 1
    assert detail.results[0].value_text == "95"
    assert detail.results[0].notes == "repetido"
    assert order.classification_for(detail.id, glucose.id) == Classification.NORMAL


def test_record_requires_parameter_for_parametered_test(order):
    with pytest.raises(ParameterRequiredForTest):
        order.record_result(order.details[0].id, None, "90")
    assert order.status == LabOrderStatus.PENDING


def test_record_rejects_parameter_for_free_text_test(biopsy_test, glucose):
    order = create_order("LAB-20261018-0002", uuid4(), [biopsy_test])
    detail = order.details[0]
    with pytest.raises(ParameterRequiredForTest):
        order.record_result(detail.id, glucose.id, "algo")

    assert order.record_result(detail.id, None, "Sin atipias") == Classification.NORMAL
    assert order.missing_results() == []


def test_unknown_detail_and_parameter(order, hemoglobin):
    with pytest.raises(UnknownDetail):
        order.record_result(uuid4(), hemoglobin.id, "13")
    # Hemoglobina pertenece al hemograma, no a la glucosa
    with pytest.raises(UnknownParameter):
        order.record_result(order.details[0].id, hemoglobin.id, "13")


def test_complete_requires_actor(order, glucose):
    order.record_result(order.details[0].id, glucose.id, "90")
    with pytest.raises(IllegalTransition):
        order.transition_status(LabOrderStatus.COMPLETED)
    assert order.status == LabOrderStatus.PROCESSING


def test_complete_from_pending_is_illegal(order):
    with pytest.raises(IllegalTransition):
        order.complete(uuid4())


def test_completed_order_is_frozen(order, glucose):
    actor = uuid4()
    order.record_result(order.details[0].id, glucose.id, "90")
    order.complete(actor)

    assert order.status == LabOrderStatus.COMPLETED
    assert order.completed_by == actor
    assert order.completed_at is not None
    assert order.is_finalized

    with pytest.raises(OrderAlreadyFinalized):
        order.record_result(order.details[0].id, glucose.id, "100")
    for status in LabOrderStatus:
        with pytest.raises(OrderAlreadyFinalized):
            order.transition_status(status, actor_id=actor)


def test_cancel_records_reason(order, glucose):
    actor = uuid4()
    order.cancel(actor, reason="Muestra hemolizada")

    assert order.status == LabOrderStatus.CANCELLED
    assert order.cancelled_by == actor
    assert order.cancel_reason == "Muestra hemolizada"
    assert order.completed_by is None
    with pytest.raises(OrderAlreadyFinalized):
        order.record_result(order.details[0].id, glucose.id, "90")


def test_full_scenario(order, glucose, hemoglobin, leukocytes):
    glucose_detail, cbc_detail = order.details
    technician = uuid4()

    order.transition_status(LabOrderStatus.SAMPLES_COLLECTED, actor_id=technician)
    assert order.record_result(glucose_detail.id, glucose.id, "450") == Classification.CRITICAL
    assert order.record_result(cbc_detail.id, hemoglobin.id, "14.2") == Classification.NORMAL

    summary = order.summarize()
    assert summary.expected_results == 3
    assert summary.recorded_results == 2
    assert summary.missing_results == 1
    assert not summary.is_complete
    assert summary.has_critical

    assert order.record_result(cbc_detail.id, leukocytes.id, "") == Classification.NOT_EVALUABLE
    order.complete(technician)

    summary = order.summarize()
    assert summary.status == LabOrderStatus.COMPLETED
    assert summary.is_complete and summary.is_finalized
    assert summary.critical_count == 1
    assert summary.normal_count == 1
    assert summary.abnormal_count == 0
    assert summary.not_evaluable_count == 1
    assert summary.completed_by == technician


def test_summary_lines_follow_parameter_order(order, hemoglobin):
    order.record_result(order.details[1].id, hemoglobin.id, "6.5")
    lines = order.summarize().lines

    assert [line.parameter_name for line in lines] == ["Glucosa", "Hemoglobina", "Leucocitos"]
    hgb = lines[1]
    assert hgb.classification == Classification.CRITICAL
    assert hgb.reference_range == "12 - 16"
    assert hgb.unit == "g/dL"
    assert lines[0].value_text is None and lines[0].classification is None


def test_completion_without_all_results_is_allowed(order, glucose):
    order.record_result(order.details[0].id, glucose.id, "90")
    order.complete(uuid4())

    assert order.status == LabOrderStatus.COMPLETED
    assert len(order.missing_results()) == 2


def test_numeric_and_text_parameters_end_to_end():
    glucose = ParameterDefinition(name="Glucosa", ref_min=70, ref_max=100)
    culture = ParameterDefinition(name="Cultivo", reference_text="Negativo", sort_order=1)
    test = TestDefinition(code="MIX-001", name="Panel mixto", parameters=(glucose, culture))
    order = create_order("LAB-20261018-0003", uuid4(), [test])
    detail_id = order.details[0].id

    assert order.record_result(detail_id, glucose.id, "130") == Classification.ABNORMAL
    assert order.status == LabOrderStatus.PROCESSING
    assert order.record_result(detail_id, culture.id, "Negative") == Classification.NORMAL

    order.complete(uuid4())
    assert order.status == LabOrderStatus.COMPLETED

    with pytest.raises(OrderAlreadyFinalized):
        order.record_result(detail_id, glucose.id, "90")


def test_review_result(order, glucose):
    reviewer = uuid4()
    detail_id = order.details[0].id
    order.record_result(detail_id, glucose.id, "90")

    result = order.review_result(detail_id, glucose.id, reviewer)
    assert result.is_reviewed
    assert result.reviewed_by == reviewer
    assert order.summarize().reviewed_results == 1
    assert order.locate_result(result.id) == (order.details[0], result)


def test_new_value_clears_review(order, glucose):
    detail_id = order.details[0].id
    order.record_result(detail_id, glucose.id, "90")
    order.review_result(detail_id, glucose.id, uuid4())

    order.record_result(detail_id, glucose.id, "95")
    result = order.details[0].find_result(glucose.id)
    assert not result.is_reviewed
    assert result.reviewed_by is None


def test_review_needs_a_recorded_result(order, glucose):
    with pytest.raises(UnknownResult):
        order.review_result(order.details[0].id, glucose.id, uuid4())
    with pytest.raises(UnknownResult):
        order.locate_result(uuid4())


def test_review_after_completion_but_not_after_cancellation(order, glucose):
    detail_id = order.details[0].id
    order.record_result(detail_id, glucose.id, "90")
    order.complete(uuid4())
    assert order.review_result(detail_id, glucose.id, uuid4()).is_reviewed

    cancelled = create_order("LAB-20261018-0004", uuid4(), [order.details[0].test])
    cancelled.record_result(cancelled.details[0].id, glucose.id, "90")
    cancelled.cancel(reason="Muestra insuficiente")
    with pytest.raises(OrderAlreadyFinalized):
        cancelled.review_result(cancelled.details[0].id, glucose.id, uuid4())
