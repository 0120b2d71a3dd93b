from __future__ import annotations

from liacoach.coach_intent import detect_coach_intent, is_check_in_request, is_weekly_plan_request


def test_detects_explicit_coach_phrases() -> None:
    positives = [
        "plan semanal",
        "plan de comidas",
        "meal plan",
        "entrenamiento semanal",
        "training plan",
        "check-in",
        "revisión del día",
        "peso",
        "calorías",
        "nutrición",
        "hábitos",
        "objetivos de salud",
        "quiero mejorar mi alimentación",
        "quiero perder peso",
        "quiero ganar músculo",
    ]
    for phrase in positives:
        assert detect_coach_intent(phrase), phrase


def test_ignores_non_coach_chat() -> None:
    negatives = [
        "hola",
        "ayer comi pizza",
        "puedes revisar este codigo?",
        "jaja que buen meme",
        "cuanto es 2+2",
        "",
    ]
    for phrase in negatives:
        assert not detect_coach_intent(phrase), phrase


def test_request_kinds() -> None:
    assert is_weekly_plan_request("Hazme un PLAN SEMANAL porfa")
    assert not is_weekly_plan_request("check in rapido")
    assert is_check_in_request("check in rapido")
    assert is_check_in_request("Revisión del día")
