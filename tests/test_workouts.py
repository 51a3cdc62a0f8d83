"""Tests for the workout store and records."""

import pytest

from cadence_chat.workouts import (
    EquipmentType,
    ExerciseSet,
    WeightType,
    WorkoutNotFound,
    WorkoutType,
)


@pytest.mark.parametrize("workout_type, name", [
    (WorkoutType.PUSH, "Push"),
    (WorkoutType.FULL_BODY, "Full Body"),
    (WorkoutType.BACK_BICEPS, "Back & Biceps"),
    (WorkoutType.HAMSTRINGS_GLUTES, "Hamstrings & Glutes"),
    (WorkoutType.HIIT, "HIIT"),
])
def test_display_names(workout_type, name):
    assert workout_type.display_name == name


@pytest.mark.parametrize("weight_type, value, bar, expected", [
    (WeightType.PER_SIDE, 20, 20, 60),
    (WeightType.PER_SIDE, 10, None, 20),
    (WeightType.TOTAL, 80, None, 80),
    (WeightType.PER_DUMBBELL, 15, None, 15),
    (WeightType.BODYWEIGHT, 10, None, None),
    (WeightType.TOTAL, None, None, None),
])
def test_total_weight(weight_type, value, bar, expected):
    s = ExerciseSet(reps=5, weight_type=weight_type, weight_value=value, bar_weight=bar)
    assert s.total_weight == expected


def test_workout_round_trip(workout_store):
    workout = workout_store.create_workout(WorkoutType.LEGS, duration=50, notes="heavy day")
    workout_store.add_exercise(
        workout.id,
        "Leg Press",
        EquipmentType.MACHINE,
        [ExerciseSet(reps=12, weight_type=WeightType.TOTAL, weight_value=140)],
    )

    stored = workout_store.get_workout(workout.id)
    assert stored.type == WorkoutType.LEGS
    assert stored.notes == "heavy day"
    assert [e.name for e in stored.exercises] == ["Leg Press"]
    assert stored.exercises[0].sets[0].weight_value == 140


def test_add_exercise_unknown_workout(workout_store):
    with pytest.raises(WorkoutNotFound):
        workout_store.add_exercise("nope", "Curl", EquipmentType.DUMBBELL, [])


def test_missing_workout_returns_none(workout_store):
    assert workout_store.get_workout("nope") is None
