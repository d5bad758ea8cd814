"""create progress and analytics tables

Revision ID: 5c1e2a7d9b40
Revises:
Create Date: 2026-10-19 10:12:41.308214

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e2a7d9b40'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('username', sa.String(), nullable=True),
        sa.Column('full_name', sa.String(), nullable=True),
        sa.Column('role', sa.String(), nullable=True),
        sa.Column('class_grade', sa.String(), nullable=True),
        sa.Column('section', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=True)
    op.create_index(op.f('ix_users_class_grade'), 'users', ['class_grade'], unique=False)

    op.create_table('modules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('module_name', sa.String(), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('grade_level', sa.String(), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_modules_id'), 'modules', ['id'], unique=False)

    op.create_table('units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('module_id', sa.Integer(), nullable=False),
        sa.Column('unit_name', sa.String(), nullable=False),
        sa.Column('unit_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['module_id'], ['modules.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('module_id', 'unit_order', name='uq_units_module_order')
    )
    op.create_index(op.f('ix_units_id'), 'units', ['id'], unique=False)
    op.create_index(op.f('ix_units_module_id'), 'units', ['module_id'], unique=False)

    op.create_table('learning_parts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('part_type', sa.String(), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('passing_score', sa.Float(), nullable=True),
        sa.Column('max_attempts', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_learning_parts_id'), 'learning_parts', ['id'], unique=False)
    op.create_index(op.f('ix_learning_parts_unit_id'), 'learning_parts', ['unit_id'], unique=False)

    op.create_table('student_progress',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('best_score', sa.Float(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('time_spent_seconds', sa.Integer(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_accessed', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['part_id'], ['learning_parts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'part_id', name='uq_progress_student_part')
    )
    op.create_index(op.f('ix_student_progress_id'), 'student_progress', ['id'], unique=False)
    op.create_index(op.f('ix_student_progress_student_id'), 'student_progress', ['student_id'], unique=False)
    op.create_index(op.f('ix_student_progress_part_id'), 'student_progress', ['part_id'], unique=False)

    op.create_table('progress_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('event_type', sa.String(), nullable=False),
        sa.Column('time_delta_seconds', sa.Integer(), nullable=False),
        sa.Column('status_after', sa.String(), nullable=False),
        sa.Column('score', sa.Float(), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['part_id'], ['learning_parts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_progress_events_id'), 'progress_events', ['id'], unique=False)
    op.create_index(op.f('ix_progress_events_student_id'), 'progress_events', ['student_id'], unique=False)
    op.create_index(op.f('ix_progress_events_part_id'), 'progress_events', ['part_id'], unique=False)
    op.create_index(op.f('ix_progress_events_occurred_at'), 'progress_events', ['occurred_at'], unique=False)

    op.create_table('assignment_attempts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('score', sa.Float(), nullable=False),
        sa.Column('passed', sa.Boolean(), nullable=False),
        sa.Column('submitted_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['part_id'], ['learning_parts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id', 'part_id', 'attempt_number', name='uq_attempt_number')
    )
    op.create_index(op.f('ix_assignment_attempts_id'), 'assignment_attempts', ['id'], unique=False)
    op.create_index(op.f('ix_assignment_attempts_student_id'), 'assignment_attempts', ['student_id'], unique=False)
    op.create_index(op.f('ix_assignment_attempts_part_id'), 'assignment_attempts', ['part_id'], unique=False)

    op.create_table('tracking_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('part_id', sa.Integer(), nullable=False),
        sa.Column('last_sequence', sa.Integer(), nullable=False),
        sa.Column('credited_seconds', sa.Integer(), nullable=False),
        sa.Column('completion_acknowledged', sa.Boolean(), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_heartbeat_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ended_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.ForeignKeyConstraint(['part_id'], ['learning_parts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_tracking_sessions_id'), 'tracking_sessions', ['id'], unique=False)
    op.create_index(op.f('ix_tracking_sessions_session_id'), 'tracking_sessions', ['session_id'], unique=True)
    op.create_index(op.f('ix_tracking_sessions_student_id'), 'tracking_sessions', ['student_id'], unique=False)

    op.create_table('student_weak_areas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('area_type', sa.String(), nullable=False),
        sa.Column('area_name', sa.String(), nullable=False),
        sa.Column('difficulty_score', sa.Integer(), nullable=False),
        sa.Column('occurrences', sa.Integer(), nullable=False),
        sa.Column('improvement_status', sa.String(), nullable=False),
        sa.Column('first_identified', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_occurrence', sa.DateTime(timezone=True), nullable=False),
        sa.Column('module_id', sa.Integer(), nullable=True),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('part_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['module_id'], ['modules.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['part_id'], ['learning_parts.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_student_weak_areas_id'), 'student_weak_areas', ['id'], unique=False)
    op.create_index(op.f('ix_student_weak_areas_student_id'), 'student_weak_areas', ['student_id'], unique=False)

    op.create_table('weak_area_transitions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('weak_area_id', sa.Integer(), nullable=False),
        sa.Column('from_status', sa.String(), nullable=False),
        sa.Column('to_status', sa.String(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('actor', sa.String(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=False),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['weak_area_id'], ['student_weak_areas.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_weak_area_transitions_id'), 'weak_area_transitions', ['id'], unique=False)
    op.create_index(op.f('ix_weak_area_transitions_weak_area_id'), 'weak_area_transitions', ['weak_area_id'], unique=False)

    op.create_table('reports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('report_type', sa.String(), nullable=False),
        sa.Column('report_name', sa.String(), nullable=False),
        sa.Column('generated_by', sa.Integer(), nullable=True),
        sa.Column('parameters', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('file_path', sa.String(), nullable=True),
        sa.Column('file_size_bytes', sa.Integer(), nullable=True),
        sa.Column('record_count', sa.Integer(), nullable=True),
        sa.Column('skipped_count', sa.Integer(), nullable=True),
        sa.Column('download_count', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['generated_by'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_reports_id'), 'reports', ['id'], unique=False)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index(op.f('ix_reports_id'), table_name='reports')
    op.drop_table('reports')
    op.drop_index(op.f('ix_weak_area_transitions_weak_area_id'), table_name='weak_area_transitions')
    op.drop_index(op.f('ix_weak_area_transitions_id'), table_name='weak_area_transitions')
    op.drop_table('weak_area_transitions')
    op.drop_index(op.f('ix_student_weak_areas_student_id'), table_name='student_weak_areas')
    op.drop_index(op.f('ix_student_weak_areas_id'), table_name='student_weak_areas')
    op.drop_table('student_weak_areas')
    op.drop_index(op.f('ix_tracking_sessions_student_id'), table_name='tracking_sessions')
    op.drop_index(op.f('ix_tracking_sessions_session_id'), table_name='tracking_sessions')
    op.drop_index(op.f('ix_tracking_sessions_id'), table_name='tracking_sessions')
    op.drop_table('tracking_sessions')
    op.drop_index(op.f('ix_assignment_attempts_part_id'), table_name='assignment_attempts')
    op.drop_index(op.f('ix_assignment_attempts_student_id'), table_name='assignment_attempts')
    op.drop_index(op.f('ix_assignment_attempts_id'), table_name='assignment_attempts')
    op.drop_table('assignment_attempts')
    op.drop_index(op.f('ix_progress_events_occurred_at'), table_name='progress_events')
    op.drop_index(op.f('ix_progress_events_part_id'), table_name='progress_events')
    op.drop_index(op.f('ix_progress_events_student_id'), table_name='progress_events')
    op.drop_index(op.f('ix_progress_events_id'), table_name='progress_events')
    op.drop_table('progress_events')
    op.drop_index(op.f('ix_student_progress_part_id'), table_name='student_progress')
    op.drop_index(op.f('ix_student_progress_student_id'), table_name='student_progress')
    op.drop_index(op.f('ix_student_progress_id'), table_name='student_progress')
    op.drop_table('student_progress')
    op.drop_index(op.f('ix_learning_parts_unit_id'), table_name='learning_parts')
    op.drop_index(op.f('ix_learning_parts_id'), table_name='learning_parts')
    op.drop_table('learning_parts')
    op.drop_index(op.f('ix_units_module_id'), table_name='units')
    op.drop_index(op.f('ix_units_id'), table_name='units')
    op.drop_table('units')
    op.drop_index(op.f('ix_modules_id'), table_name='modules')
    op.drop_table('modules')
    op.drop_index(op.f('ix_users_class_grade'), table_name='users')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')
