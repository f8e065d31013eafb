"""Initial schema - placement pipeline tables.

Revision ID: 00001
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '00001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # =====================
    # Collaborator tables (owned by the accounts and drives services)
    # =====================

    # students
    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('student_id', sa.String(64), nullable=True),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('university_email', sa.String(255), nullable=False),
        sa.Column('branch', sa.String(100), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('student_id'),
        sa.UniqueConstraint('university_email'),
    )

    # drives (active stage FK added once drive_stages exists)
    op.create_table(
        'drives',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_code', sa.String(64), nullable=False),
        sa.Column('company_name', sa.String(255), nullable=False),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('active', sa.Boolean(), default=True),
        sa.Column('posted_by', sa.String(64), nullable=True),
        sa.Column('posted_by_employer', sa.String(64), nullable=True),
        sa.Column('stages_enabled', sa.Boolean(), default=False),
        sa.Column('current_active_stage_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('drive_code'),
    )

    # applications
    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='Applied'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('applied_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['drive_id'], ['drives.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('drive_id', 'student_id', name='uq_applications_drive_student'),
    )

    # =====================
    # Pipeline tables
    # =====================

    # drive_stages
    op.create_table(
        'drive_stages',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=False),
        sa.Column('stage_name', sa.String(255), nullable=False),
        sa.Column('stage_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('cutoff_type', sa.String(20), nullable=False, server_default='percentage'),
        sa.Column('cutoff_value', sa.Float(), nullable=True),
        sa.Column('cutoff_total_marks', sa.Float(), nullable=True),
        sa.Column('scheduled_date', sa.DateTime(), nullable=True),
        sa.Column('location', sa.String(255), nullable=True),
        sa.Column('mode', sa.String(20), nullable=False, server_default='Offline'),
        sa.Column('instructions', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), default=False),
        sa.Column('order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['drive_id'], ['drives.id'], ondelete='CASCADE'),
    )
    op.create_index('idx_drive_stages_drive_order', 'drive_stages', ['drive_id', 'order'])
    op.create_index('idx_drive_stages_drive_active', 'drive_stages', ['drive_id', 'is_active'])

    with op.batch_alter_table('drives') as batch_op:
        batch_op.create_foreign_key(
            'fk_drives_active_stage', 'drive_stages',
            ['current_active_stage_id'], ['id'], ondelete='SET NULL',
        )

    # stage_results
    op.create_table(
        'stage_results',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('marks_obtained', sa.Float(), nullable=False),
        sa.Column('total_marks', sa.Float(), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=True),
        sa.Column('verdict', sa.String(20), nullable=False, server_default='Pending'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('evaluated_by', sa.String(64), nullable=True),
        sa.Column('evaluator_role', sa.String(20), nullable=True),
        sa.Column('evaluated_at', sa.DateTime(), nullable=True),
        sa.Column('upload_method', sa.String(10), nullable=False),
        sa.Column('published', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('published_at', sa.DateTime(), nullable=True),
        sa.Column('source_row', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['drive_id'], ['drives.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['drive_stages.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('drive_id', 'student_id', 'stage_id', name='uq_stage_results_drive_student_stage'),
    )
    op.create_index('idx_stage_results_drive_stage', 'stage_results', ['drive_id', 'stage_id'])
    op.create_index('idx_stage_results_drive_published', 'stage_results', ['drive_id', 'published'])
    op.create_index('idx_stage_results_student_published', 'stage_results', ['student_id', 'published'])

    # stage_progress
    op.create_table(
        'stage_progress',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('current_stage_id', sa.Integer(), nullable=True),
        sa.Column('current_stage_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('overall_status', sa.String(20), nullable=False, server_default='Active'),
        sa.Column('eliminated_at', sa.DateTime(), nullable=True),
        sa.Column('eliminated_reason', sa.Text(), nullable=True),
        sa.Column('selected_at', sa.DateTime(), nullable=True),
        sa.Column('final_remarks', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['drive_id'], ['drives.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['student_id'], ['students.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['current_stage_id'], ['drive_stages.id'], ondelete='SET NULL'),
        sa.UniqueConstraint('drive_id', 'student_id', name='uq_stage_progress_drive_student'),
    )
    op.create_index('idx_stage_progress_drive_status', 'stage_progress', ['drive_id', 'overall_status'])
    op.create_index('idx_stage_progress_current_stage', 'stage_progress', ['current_stage_id'])

    # stage_history
    op.create_table(
        'stage_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('progress_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=True),
        sa.Column('stage_name', sa.String(255), nullable=True),
        sa.Column('entered_at', sa.DateTime(), nullable=False),
        sa.Column('exited_at', sa.DateTime(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='In Progress'),
        sa.Column('result_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['progress_id'], ['stage_progress.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['drive_stages.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['result_id'], ['stage_results.id'], ondelete='SET NULL'),
    )
    op.create_index('idx_stage_history_progress', 'stage_history', ['progress_id', 'position'])

    # result_publications
    op.create_table(
        'result_publications',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=False),
        sa.Column('stage_id', sa.Integer(), nullable=False),
        sa.Column('published_by', sa.String(64), nullable=False),
        sa.Column('publisher_role', sa.String(20), nullable=False),
        sa.Column('published_at', sa.DateTime(), nullable=False),
        sa.Column('is_published', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('generation', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remarks', sa.Text(), nullable=True),
        sa.Column('total_students', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('qualified', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('not_qualified', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('pending', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cutoff_type', sa.String(20), nullable=True),
        sa.Column('cutoff_value', sa.Float(), nullable=True),
        sa.Column('average_marks', sa.Float(), nullable=True),
        sa.Column('highest_marks', sa.Float(), nullable=True),
        sa.Column('lowest_marks', sa.Float(), nullable=True),
        sa.Column('notifications_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notifications_sent_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['drive_id'], ['drives.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['stage_id'], ['drive_stages.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('drive_id', 'stage_id', name='uq_result_publications_drive_stage'),
    )
    op.create_index('idx_result_publications_drive_published', 'result_publications', ['drive_id', 'is_published'])

    # =====================
    # Audit (no foreign keys; references are weak)
    # =====================

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('performed_by', sa.String(64), nullable=False),
        sa.Column('performer_role', sa.String(20), nullable=False),
        sa.Column('drive_id', sa.Integer(), nullable=True),
        sa.Column('stage_id', sa.Integer(), nullable=True),
        sa.Column('affected_students', sa.Text(), nullable=True),
        sa.Column('affected_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(512), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('idx_audit_logs_drive_created', 'audit_logs', ['drive_id', 'created_at'])
    op.create_index('idx_audit_logs_performer_created', 'audit_logs', ['performed_by', 'created_at'])
    op.create_index('idx_audit_logs_action_created', 'audit_logs', ['action', 'created_at'])
    op.create_index('idx_audit_logs_created', 'audit_logs', ['created_at'])


def downgrade() -> None:
    op.drop_table('audit_logs')
    op.drop_table('result_publications')
    op.drop_table('stage_history')
    op.drop_table('stage_progress')
    op.drop_table('stage_results')
    with op.batch_alter_table('drives') as batch_op:
        batch_op.drop_constraint('fk_drives_active_stage', type_='foreignkey')
    op.drop_table('drive_stages')
    op.drop_table('applications')
    op.drop_table('drives')
    op.drop_table('students')
