"""create schedule tables

Revision ID: schedule_001
Revises:
Create Date: 2025-05-26 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers
revision = 'schedule_001'
down_revision = None
branch_labels = None
depends_on = None

DAY_OF_WEEK = postgresql.ENUM(
    'MONDAY', 'TUESDAY', 'WEDNESDAY', 'THURSDAY', 'FRIDAY', 'SATURDAY', 'SUNDAY',
    name='dayofweek', create_type=False
)
CLASS_KIND = postgresql.ENUM('LECTURE', 'LAB', 'TUTORIAL', 'PRACTICAL', 'EXTRA', name='classkind', create_type=False)
SESSION_STATUS = postgresql.ENUM(
    'SCHEDULED', 'CANCELLED', 'RESCHEDULED', 'COMPLETED', name='sessionstatus', create_type=False
)
ATTENDANCE_STATUS = postgresql.ENUM(
    'PRESENT', 'ABSENT', 'LATE', 'EXCUSED', name='attendancestatus', create_type=False
)
ENUM_TYPES = (DAY_OF_WEEK, CLASS_KIND, SESSION_STATUS, ATTENDANCE_STATUS)


def _base_columns():
    return [
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
    ]


def _base_indexes(table: str):
    op.create_index(op.f(f'ix_{table}_id'), table, ['id'])
    op.create_index(op.f(f'ix_{table}_created_at'), table, ['created_at'])


def upgrade() -> None:
    # Shared by several tables, so created once up front
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    # Reference data
    op.create_table('colleges',
        *_base_columns(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('code')
    )
    _base_indexes('colleges')

    op.create_table('batches',
        *_base_columns(),
        sa.Column('college_id', sa.Uuid(), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('program', sa.String(length=100), nullable=True),
        sa.Column('year', sa.String(length=10), nullable=True),
        sa.ForeignKeyConstraint(['college_id'], ['colleges.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('batches')
    op.create_index(op.f('ix_batches_college_id'), 'batches', ['college_id'])

    op.create_table('sections',
        *_base_columns(),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'name', name='uq_section_per_batch')
    )
    _base_indexes('sections')
    op.create_index(op.f('ix_sections_batch_id'), 'sections', ['batch_id'])

    op.create_table('subjects',
        *_base_columns(),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('section_id', sa.Uuid(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('code', sa.String(length=20), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'section_id', 'name', name='uq_subject_name_per_section')
    )
    _base_indexes('subjects')
    op.create_index(op.f('ix_subjects_batch_id'), 'subjects', ['batch_id'])
    op.create_index(op.f('ix_subjects_section_id'), 'subjects', ['section_id'])

    op.create_table('users',
        *_base_columns(),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('batch_id', sa.Uuid(), nullable=True),
        sa.Column('section_id', sa.Uuid(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('fcm_token', sa.String(length=512), nullable=True),
        sa.Column('reminder_offsets', sa.JSON(), nullable=True),
        sa.Column('daily_summary_enabled', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    _base_indexes('users')
    op.create_index(op.f('ix_users_batch_id'), 'users', ['batch_id'])
    op.create_index(op.f('ix_users_section_id'), 'users', ['section_id'])

    # Weekly template
    op.create_table('timetables',
        *_base_columns(),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('section_id', sa.Uuid(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'section_id', name='uq_timetable_batch_section')
    )
    _base_indexes('timetables')
    op.create_index(op.f('ix_timetables_batch_id'), 'timetables', ['batch_id'])
    op.create_index(op.f('ix_timetables_section_id'), 'timetables', ['section_id'])
    op.create_index(op.f('ix_timetables_is_active'), 'timetables', ['is_active'])

    op.create_table('timetable_entries',
        *_base_columns(),
        sa.Column('timetable_id', sa.Uuid(), nullable=False),
        sa.Column('day_of_week', DAY_OF_WEEK, nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('subject_name', sa.String(length=100), nullable=False),
        sa.Column('room', sa.String(length=50), nullable=True),
        sa.Column('kind', CLASS_KIND, nullable=False),
        sa.Column('teacher_name', sa.String(length=200), nullable=True),
        sa.ForeignKeyConstraint(['timetable_id'], ['timetables.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    _base_indexes('timetable_entries')
    op.create_index(op.f('ix_timetable_entries_timetable_id'), 'timetable_entries', ['timetable_id'])
    op.create_index(op.f('ix_timetable_entries_day_of_week'), 'timetable_entries', ['day_of_week'])

    # Materialized schedule
    op.create_table('weekly_sessions',
        *_base_columns(),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('section_id', sa.Uuid(), nullable=False),
        sa.Column('college_id', sa.Uuid(), nullable=True),
        sa.Column('week_start', sa.DateTime(timezone=True), nullable=False),
        sa.Column('week_end', sa.DateTime(timezone=True), nullable=False),
        sa.Column('iso_year', sa.Integer(), nullable=False),
        sa.Column('iso_week', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('generated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id'], ),
        sa.ForeignKeyConstraint(['college_id'], ['colleges.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'section_id', 'iso_year', 'iso_week', name='uq_weekly_session_week')
    )
    _base_indexes('weekly_sessions')
    op.create_index(op.f('ix_weekly_sessions_batch_id'), 'weekly_sessions', ['batch_id'])
    op.create_index(op.f('ix_weekly_sessions_section_id'), 'weekly_sessions', ['section_id'])
    op.create_index(op.f('ix_weekly_sessions_college_id'), 'weekly_sessions', ['college_id'])

    op.create_table('session_classes',
        *_base_columns(),
        sa.Column('weekly_session_id', sa.Uuid(), nullable=False),
        sa.Column('template_entry_id', sa.Uuid(), nullable=True),
        sa.Column('title', sa.String(length=150), nullable=True),
        sa.Column('subject_id', sa.Uuid(), nullable=False),
        sa.Column('batch_id', sa.Uuid(), nullable=False),
        sa.Column('section_id', sa.Uuid(), nullable=False),
        sa.Column('college_id', sa.Uuid(), nullable=True),
        sa.Column('class_date', sa.Date(), nullable=False),
        sa.Column('day_name', sa.String(length=10), nullable=True),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('day', sa.Integer(), nullable=False),
        sa.Column('month', sa.Integer(), nullable=False),
        sa.Column('year', sa.Integer(), nullable=False),
        sa.Column('date_string', sa.String(length=10), nullable=False),
        sa.Column('room', sa.String(length=50), nullable=True),
        sa.Column('kind', CLASS_KIND, nullable=False),
        sa.Column('status', SESSION_STATUS, nullable=False),
        sa.Column('is_extra_class', sa.Boolean(), nullable=False),
        sa.Column('cancellation_reason', sa.Text(), nullable=True),
        sa.Column('is_marking_open', sa.Boolean(), nullable=False),
        sa.Column('is_marking_done', sa.Boolean(), nullable=False),
        sa.Column('marking_opened_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('marking_closed_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['weekly_session_id'], ['weekly_sessions.id'], ),
        sa.ForeignKeyConstraint(['subject_id'], ['subjects.id'], ),
        sa.ForeignKeyConstraint(['batch_id'], ['batches.id'], ),
        sa.ForeignKeyConstraint(['section_id'], ['sections.id'], ),
        sa.ForeignKeyConstraint(['college_id'], ['colleges.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('batch_id', 'section_id', 'class_date', 'start_time', name='uq_session_class_slot'),
        sa.UniqueConstraint(
            'weekly_session_id', 'template_entry_id', 'class_date', 'start_time',
            name='uq_session_class_template_slot'
        )
    )
    _base_indexes('session_classes')
    op.create_index(op.f('ix_session_classes_weekly_session_id'), 'session_classes', ['weekly_session_id'])
    op.create_index(op.f('ix_session_classes_template_entry_id'), 'session_classes', ['template_entry_id'])
    op.create_index(op.f('ix_session_classes_subject_id'), 'session_classes', ['subject_id'])
    op.create_index(op.f('ix_session_classes_date_string'), 'session_classes', ['date_string'])
    op.create_index(op.f('ix_session_classes_status'), 'session_classes', ['status'])
    op.create_index('ix_session_classes_week_date', 'session_classes', ['weekly_session_id', 'class_date'])

    op.create_table('attendances',
        *_base_columns(),
        sa.Column('session_class_id', sa.Uuid(), nullable=False),
        sa.Column('student_id', sa.Uuid(), nullable=False),
        sa.Column('status', ATTENDANCE_STATUS, nullable=False),
        sa.Column('marked_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.ForeignKeyConstraint(['session_class_id'], ['session_classes.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['student_id'], ['users.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_class_id', 'student_id', name='uq_attendance_per_class_student')
    )
    _base_indexes('attendances')
    op.create_index(op.f('ix_attendances_session_class_id'), 'attendances', ['session_class_id'])
    op.create_index(op.f('ix_attendances_student_id'), 'attendances', ['student_id'])


def downgrade() -> None:
    op.drop_table('attendances')
    op.drop_table('session_classes')
    op.drop_table('weekly_sessions')
    op.drop_table('timetable_entries')
    op.drop_table('timetables')
    op.drop_table('users')
    op.drop_table('subjects')
    op.drop_table('sections')
    op.drop_table('batches')
    op.drop_table('colleges')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
