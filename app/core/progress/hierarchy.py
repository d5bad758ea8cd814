"""
Hierarchy resolver: module → unit → part tree annotated with one student's
completion and unlock state.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import LockedContentError, NotFoundError
from app.models.curriculum import Module, Unit, Part
from app.models.progress import ProgressRecord, STATUS_IN_PROGRESS, STATUS_NOT_STARTED
from app.schemas.hierarchy import ModuleHierarchy, ModuleInfo, UnitNode, PartNode, ResumePoint

logger = logging.getLogger(__name__)


@dataclass
class UnitState:
    """Computed state of one unit for one student."""
    unit: Unit
    parts: List[Part]
    progress_percentage: float
    is_unlocked: bool
    records: Dict[int, ProgressRecord] = field(default_factory=dict)


def unit_percentage(parts: List[Part], records: Dict[int, ProgressRecord]) -> float:
    """
    Completed parts / total parts × 100, every part weighted equally.

    A part counts once it has been completed at least once, so re-opening an
    assignment for another attempt never lowers the unit's progress. A unit
    without parts is complete.
    """
    if not parts:
        return 100.0
    completed = sum(
        1 for part in parts
        if part.id in records and (records[part.id].attempts or 0) > 0
    )
    return round(completed / len(parts) * 100, 2)


class HierarchyResolver:
    """
    Builds the per-student curriculum tree.

    Unlock rule: the first unit (by unit_order) is always unlocked; unit n is
    unlocked iff unit n-1 is at 100%. State is computed from the ledger on every
    read, so a reader always sees its own latest writes.
    """

    def __init__(self, db: Session):
        self.db = db

    def _get_module(self, module_id: int) -> Module:
        module = self.db.query(Module).filter(Module.id == module_id).first()
        if not module:
            raise NotFoundError("Module")
        return module

    def _records_for(self, student_id: int, part_ids: List[int]) -> Dict[int, ProgressRecord]:
        if not part_ids:
            return {}
        rows = self.db.query(ProgressRecord).filter(
            ProgressRecord.student_id == student_id,
            ProgressRecord.part_id.in_(part_ids)
        ).all()
        return {int(r.part_id): r for r in rows}  # type: ignore

    def unit_states(self, module: Module, student_id: int) -> List[UnitState]:
        """Compute progress and unlock state for every unit of a module, in order."""
        units = (
            self.db.query(Unit)
            .filter(Unit.module_id == module.id)
            .order_by(Unit.unit_order)
            .all()
        )
        parts_by_unit: Dict[int, List[Part]] = {int(u.id): [] for u in units}  # type: ignore
        if units:
            parts = (
                self.db.query(Part)
                .filter(Part.unit_id.in_(list(parts_by_unit.keys())), Part.is_active.is_(True))
                .order_by(Part.display_order, Part.id)
                .all()
            )
            for part in parts:
                parts_by_unit[int(part.unit_id)].append(part)  # type: ignore

        all_part_ids = [p.id for unit_parts in parts_by_unit.values() for p in unit_parts]
        records = self._records_for(student_id, all_part_ids)  # type: ignore

        states: List[UnitState] = []
        previous: Optional[UnitState] = None
        for unit in units:
            unit_parts = parts_by_unit[int(unit.id)]  # type: ignore
            percentage = unit_percentage(unit_parts, records)
            is_unlocked = previous is None or previous.progress_percentage == 100.0
            state = UnitState(
                unit=unit,
                parts=unit_parts,
                progress_percentage=percentage,
                is_unlocked=is_unlocked,
                records={p.id: records[p.id] for p in unit_parts if p.id in records},  # type: ignore
            )
            states.append(state)
            previous = state
        return states

    def resolve(self, module_id: int, student_id: int) -> ModuleHierarchy:
        """
        Build the hierarchy read response.

        Locked units keep their names and parts so the UI can show placeholders;
        starting their parts is refused by the ledger instead.

        Args:
            module_id: Module ID
            student_id: Student ID

        Returns:
            ModuleHierarchy with per-unit progress and per-part status
        """
        module = self._get_module(module_id)
        states = self.unit_states(module, student_id)

        units = []
        for state in states:
            units.append(UnitNode(
                unit_id=int(state.unit.id),  # type: ignore
                unit_name=str(state.unit.unit_name),
                unit_order=int(state.unit.unit_order),  # type: ignore
                progress_percentage=state.progress_percentage,
                is_unlocked=state.is_unlocked,
                parts=[
                    PartNode(
                        part_id=int(part.id),  # type: ignore
                        title=str(part.title),
                        part_type=str(part.part_type),
                        duration_minutes=part.duration_minutes,  # type: ignore
                        student_status=str(state.records[part.id].status) if part.id in state.records else STATUS_NOT_STARTED,
                    )
                    for part in state.parts
                ],
            ))

        return ModuleHierarchy(
            module=ModuleInfo(
                module_id=int(module.id),  # type: ignore
                module_name=str(module.module_name),
                grade_level=module.grade_level,  # type: ignore
                progress_percentage=self._mean([s.progress_percentage for s in states]),
            ),
            units=units,
            resume_point=self._resume_from(states),
        )

    def resume_point(self, module_id: int, student_id: int) -> Optional[ResumePoint]:
        """
        Part the student should open next in a module.

        The most recently accessed in-progress part of an unlocked unit wins;
        otherwise the first never-completed part of the earliest unlocked unit
        that is not finished. None once every part has been completed.
        """
        module = self._get_module(module_id)
        return self._resume_from(self.unit_states(module, student_id))

    def _resume_from(self, states: List[UnitState]) -> Optional[ResumePoint]:
        unlocked = [s for s in states if s.is_unlocked]

        in_progress = [
            (state, part) for state in unlocked for part in state.parts
            if part.id in state.records and state.records[part.id].status == STATUS_IN_PROGRESS
        ]
        if in_progress:
            state, part = max(
                in_progress,
                key=lambda sp: sp[0].records[sp[1].id].last_accessed or datetime.min,
            )
            return self._resume_node(state, part, "in_progress")

        for state in unlocked:
            for part in state.parts:
                record = state.records.get(part.id)
                if record is None or not (record.attempts or 0) > 0:
                    return self._resume_node(state, part, "next")
        return None

    @staticmethod
    def _resume_node(state: UnitState, part: Part, reason: str) -> ResumePoint:
        record = state.records.get(part.id)  # type: ignore
        return ResumePoint(
            unit_id=int(state.unit.id),  # type: ignore
            unit_name=str(state.unit.unit_name),
            part_id=int(part.id),  # type: ignore
            title=str(part.title),
            part_type=str(part.part_type),
            student_status=str(record.status) if record is not None else STATUS_NOT_STARTED,
            reason=reason,
        )

    def module_progress(self, module_id: int, student_id: int) -> float:
        """Mean of the module's unit percentages."""
        module = self._get_module(module_id)
        return self._mean([s.progress_percentage for s in self.unit_states(module, student_id)])

    def unit_progress(self, unit_id: int, student_id: int) -> float:
        unit = self.db.query(Unit).filter(Unit.id == unit_id).first()
        if not unit:
            raise NotFoundError("Unit")
        parts = self.db.query(Part).filter(Part.unit_id == unit_id, Part.is_active.is_(True)).all()
        return unit_percentage(parts, self._records_for(student_id, [p.id for p in parts]))  # type: ignore

    def ensure_part_unlocked(self, student_id: int, part: Part) -> None:
        """Raise LockedContentError if the part's unit is still locked for the student."""
        unit = part.unit
        for state in self.unit_states(unit.module, student_id):
            if state.unit.id == unit.id:
                if not state.is_unlocked:
                    logger.info(f"Student {student_id} denied part {part.id}: unit {unit.id} locked")
                    raise LockedContentError(str(unit.unit_name))
                return

    @staticmethod
    def _mean(values: List[float]) -> float:
        if not values:
            return 100.0
        return round(sum(values) / len(values), 2)
