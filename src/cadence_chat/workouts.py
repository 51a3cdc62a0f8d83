"""Workout records created by the assistant's tool calls."""

import sqlite3
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .store import connect


class WorkoutType(str, Enum):
    # Push Pull Legs split
    PUSH = "push"
    PULL = "pull"
    LEGS = "legs"
    # Upper body
    CHEST_TRICEPS = "chest_triceps"
    BACK_BICEPS = "back_biceps"
    SHOULDERS = "shoulders"
    ARMS = "arms"
    # Lower body
    QUADS_CALVES = "quads_calves"
    HAMSTRINGS_GLUTES = "hamstrings_glutes"
    # Full body
    FULL_BODY = "full_body"
    CORE = "core"
    # Cardio and others
    CARDIO = "cardio"
    HIIT = "hiit"
    FLEXIBILITY = "flexibility"
    CUSTOM = "custom"

    @property
    def display_name(self) -> str:
        special = {
            WorkoutType.CHEST_TRICEPS: "Chest & Triceps",
            WorkoutType.BACK_BICEPS: "Back & Biceps",
            WorkoutType.QUADS_CALVES: "Quads & Calves",
            WorkoutType.HAMSTRINGS_GLUTES: "Hamstrings & Glutes",
            WorkoutType.HIIT: "HIIT",
        }
        return special.get(self, self.value.replace("_", " ").title())


class EquipmentType(str, Enum):
    BARBELL = "barbell"
    DUMBBELL = "dumbbell"
    MACHINE = "machine"
    BODYWEIGHT = "bodyweight"
    CABLE = "cable"


class WeightType(str, Enum):
    PER_SIDE = "per_side"  # barbell, weight on each side
    TOTAL = "total"  # machines, total barbell weight
    PER_DUMBBELL = "per_db"
    BODYWEIGHT = "bodyweight"


@dataclass
class ExerciseSet:
    reps: int
    weight_type: WeightType
    weight_value: float | None = None
    bar_weight: float | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def total_weight(self) -> float | None:
        if self.weight_value is None:
            return None
        if self.weight_type == WeightType.PER_SIDE:
            return (self.bar_weight or 0) + self.weight_value * 2
        if self.weight_type == WeightType.BODYWEIGHT:
            return None
        return self.weight_value


@dataclass
class Exercise:
    name: str
    equipment_type: EquipmentType
    sets: list[ExerciseSet] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: int = field(default_factory=lambda: int(time.time()))


@dataclass
class Workout:
    type: WorkoutType
    duration: int | None = None  # minutes
    notes: str | None = None
    exercises: list[Exercise] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: int = field(default_factory=lambda: int(time.time()))


class WorkoutNotFound(LookupError):
    pass


class WorkoutStore:
    """SQLite-backed storage for workouts, exercises and sets."""

    def __init__(self, db_path: Path):
        self.conn = connect(db_path)
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS workouts (
                id TEXT PRIMARY KEY,
                type TEXT NOT NULL,
                duration INTEGER,
                notes TEXT,
                created_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS exercises (
                id TEXT PRIMARY KEY,
                workout_id TEXT NOT NULL,
                name TEXT NOT NULL,
                equipment_type TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                FOREIGN KEY (workout_id) REFERENCES workouts(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS exercise_sets (
                id TEXT PRIMARY KEY,
                exercise_id TEXT NOT NULL,
                set_index INTEGER NOT NULL,
                reps INTEGER NOT NULL,
                weight_type TEXT NOT NULL,
                weight_value REAL,
                bar_weight REAL,
                FOREIGN KEY (exercise_id) REFERENCES exercises(id) ON DELETE CASCADE
            );
        """)
        self.conn.commit()

    def create_workout(
        self, type: WorkoutType, duration: int | None = None, notes: str | None = None
    ) -> Workout:
        workout = Workout(type=type, duration=duration, notes=notes)
        self.conn.execute(
            "INSERT INTO workouts (id, type, duration, notes, created_at) VALUES (?, ?, ?, ?, ?)",
            (workout.id, workout.type.value, workout.duration, workout.notes, workout.created_at),
        )
        self.conn.commit()
        return workout

    def add_exercise(
        self,
        workout_id: str,
        name: str,
        equipment_type: EquipmentType,
        sets: list[ExerciseSet],
    ) -> Exercise:
        if not self._workout_exists(workout_id):
            raise WorkoutNotFound(workout_id)

        exercise = Exercise(name=name, equipment_type=equipment_type, sets=list(sets))
        try:
            self.conn.execute(
                """INSERT INTO exercises (id, workout_id, name, equipment_type, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                (exercise.id, workout_id, name, equipment_type.value, exercise.created_at),
            )
            for idx, s in enumerate(exercise.sets):
                self.conn.execute(
                    """INSERT INTO exercise_sets
                       (id, exercise_id, set_index, reps, weight_type, weight_value, bar_weight)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (s.id, exercise.id, idx, s.reps, s.weight_type.value, s.weight_value, s.bar_weight),
                )
            self.conn.commit()
        except sqlite3.Error:
            self.conn.rollback()
            raise
        return exercise

    def get_workout(self, workout_id: str) -> Workout | None:
        row = self.conn.execute("SELECT * FROM workouts WHERE id = ?", (workout_id,)).fetchone()
        if not row:
            return None
        return self._row_to_workout(row)

    def list_workouts(self, limit: int = 50) -> list[Workout]:
        """Return workouts, newest first."""
        rows = self.conn.execute(
            "SELECT * FROM workouts ORDER BY created_at DESC LIMIT ?", (limit,)
        ).fetchall()
        return [self._row_to_workout(r) for r in rows]

    def close(self):
        self.conn.close()

    def _workout_exists(self, workout_id: str) -> bool:
        row = self.conn.execute("SELECT 1 FROM workouts WHERE id = ?", (workout_id,)).fetchone()
        return row is not None

    def _row_to_workout(self, row: sqlite3.Row) -> Workout:
        exercises = []
        for ex in self.conn.execute(
            "SELECT * FROM exercises WHERE workout_id = ? ORDER BY created_at, rowid", (row["id"],)
        ).fetchall():
            sets = [
                ExerciseSet(
                    id=s["id"],
                    reps=s["reps"],
                    weight_type=WeightType(s["weight_type"]),
                    weight_value=s["weight_value"],
                    bar_weight=s["bar_weight"],
                )
                for s in self.conn.execute(
                    "SELECT * FROM exercise_sets WHERE exercise_id = ? ORDER BY set_index",
                    (ex["id"],),
                ).fetchall()
            ]
            exercises.append(Exercise(
                id=ex["id"],
                name=ex["name"],
                equipment_type=EquipmentType(ex["equipment_type"]),
                sets=sets,
                created_at=ex["created_at"],
            ))

        return Workout(
            id=row["id"],
            type=WorkoutType(row["type"]),
            duration=row["duration"],
            notes=row["notes"],
            exercises=exercises,
            created_at=row["created_at"],
        )
