"""Local execution of tool calls requested by the assistant.

The set of functions is closed: each name maps to one ``ToolFunction``
member, and any other name is rejected with UnknownToolFunction.
"""

import json
import logging
from dataclasses import dataclass
from enum import Enum

from .core import ToolCall
from .errors import InvalidToolArguments, ToolExecutionFailed, UnknownToolFunction
from .workouts import (
    EquipmentType,
    ExerciseSet,
    WeightType,
    WorkoutNotFound,
    WorkoutStore,
    WorkoutType,
)

logger = logging.getLogger(__name__)


class ToolFunction(str, Enum):
    CREATE_WORKOUT = "create_workout"
    ADD_EXERCISE = "add_exercise"
    ADD_TEST_WORKOUT = "add_test_workout"

    @classmethod
    def lookup(cls, name: str) -> "ToolFunction":
        try:
            return cls(name)
        except ValueError:
            raise UnknownToolFunction(name) from None


@dataclass
class CreateWorkoutArgs:
    type: WorkoutType
    duration: int | None = None
    notes: str | None = None

    @classmethod
    def parse(cls, args: dict) -> "CreateWorkoutArgs":
        name = ToolFunction.CREATE_WORKOUT.value
        return cls(
            type=_enum(name, args, "type", WorkoutType),
            duration=_positive_int(name, args, "duration", required=False),
            notes=_optional_str(name, args, "notes"),
        )


@dataclass
class AddExerciseArgs:
    workout_id: str
    name: str
    equipment_type: EquipmentType
    sets: list[ExerciseSet]

    @classmethod
    def parse(cls, args: dict) -> "AddExerciseArgs":
        fn = ToolFunction.ADD_EXERCISE.value
        raw_sets = args.get("sets")
        if not isinstance(raw_sets, list) or not raw_sets:
            raise InvalidToolArguments(fn, "'sets' must be a non-empty list")

        sets = []
        for raw in raw_sets:
            if not isinstance(raw, dict):
                raise InvalidToolArguments(fn, "each set must be an object")
            sets.append(ExerciseSet(
                reps=_positive_int(fn, raw, "reps"),
                weight_type=_enum(fn, raw, "weight_type", WeightType),
                weight_value=_optional_number(fn, raw, "weight_value"),
                bar_weight=_optional_number(fn, raw, "bar_weight"),
            ))

        return cls(
            workout_id=_required_str(fn, args, "workout_id"),
            name=_required_str(fn, args, "name"),
            equipment_type=_enum(fn, args, "equipment_type", EquipmentType),
            sets=sets,
        )


class ToolDispatcher:
    """Maps a named function call to a local side effect and a confirmation string."""

    def __init__(self, workouts: WorkoutStore):
        self.workouts = workouts

    def execute_call(self, call: ToolCall) -> dict:
        """Run *call* and return its tool-output payload."""
        return {"tool_call_id": call.id, "output": self.execute(call.name, call.arguments)}

    def execute(self, function_name: str, arguments: str) -> str:
        function = ToolFunction.lookup(function_name)
        args = _decode_arguments(function_name, arguments)
        logger.info("Executing function %s", function.value)

        if function == ToolFunction.CREATE_WORKOUT:
            return self._create_workout(CreateWorkoutArgs.parse(args))
        if function == ToolFunction.ADD_EXERCISE:
            return self._add_exercise(AddExerciseArgs.parse(args))
        return self._add_test_workout(args)

    def _create_workout(self, args: CreateWorkoutArgs) -> str:
        workout = self.workouts.create_workout(args.type, duration=args.duration, notes=args.notes)
        duration_text = f" ({workout.duration} minutes)" if workout.duration is not None else ""
        return f"Successfully logged your {workout.type.display_name} workout{duration_text}"

    def _add_exercise(self, args: AddExerciseArgs) -> str:
        try:
            exercise = self.workouts.add_exercise(
                args.workout_id, args.name, args.equipment_type, args.sets
            )
        except WorkoutNotFound:
            raise ToolExecutionFailed(f"Workout not found: {args.workout_id}") from None
        noun = "set" if len(exercise.sets) == 1 else "sets"
        return f"Added {exercise.name} with {len(exercise.sets)} {noun}"

    def _add_test_workout(self, args: dict) -> str:
        details = _required_str(ToolFunction.ADD_TEST_WORKOUT.value, args, "workout_details")
        logger.info("Workout details received: %s", details)
        return f"Successfully logged workout: {details}"


# ── Argument validation ─────────────────────────────────────────────


def _decode_arguments(function_name: str, arguments: str) -> dict:
    try:
        args = json.loads(arguments)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidToolArguments(function_name, f"not valid JSON ({e})") from e
    if not isinstance(args, dict):
        raise InvalidToolArguments(function_name, "expected a JSON object")
    return args


def _required_str(fn: str, args: dict, key: str) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise InvalidToolArguments(fn, f"'{key}' must be a non-empty string")
    return value


def _optional_str(fn: str, args: dict, key: str) -> str | None:
    value = args.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidToolArguments(fn, f"'{key}' must be a string")
    return value


def _positive_int(fn: str, args: dict, key: str, required: bool = True) -> int | None:
    value = args.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise InvalidToolArguments(fn, f"'{key}' must be a positive integer")
    return value


def _optional_number(fn: str, args: dict, key: str) -> float | None:
    value = args.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
        raise InvalidToolArguments(fn, f"'{key}' must be a non-negative number")
    return float(value)


def _enum(fn: str, args: dict, key: str, enum_cls):
    value = args.get(key)
    try:
        return enum_cls(value)
    except (ValueError, TypeError):
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidToolArguments(fn, f"'{key}' must be one of: {allowed}") from None
