"""Create branches, employees, bonus approval and audit tables

Revision ID: 20260301_initial_bonus
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260301_initial_bonus'
down_revision = None
branch_labels = None
depends_on = None

LEVELS = (1, 2, 3, 4, 5)


def upgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = inspector.get_table_names()

    if 'branches' not in tables:
        op.create_table(
            'branches',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('branch_code', sa.String(length=50), nullable=False),
            sa.Column('branch_name', sa.String(length=255), nullable=False),
            sa.Column('location', sa.String(length=255), nullable=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        )
        op.create_index('ix_branches_branch_code', 'branches', ['branch_code'], unique=True)

    if 'employees' not in tables:
        level_columns = []
        for level in LEVELS:
            level_columns.append(
                sa.Column(f'level{level}_approver_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True)
            )
            level_columns.append(sa.Column(f'level{level}_approver_name', sa.String(length=255), nullable=True))

        op.create_table(
            'employees',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('employee_id', sa.String(length=50), nullable=False),
            sa.Column('first_name', sa.String(length=100), nullable=False),
            sa.Column('last_name', sa.String(length=100), nullable=False),
            sa.Column('email', sa.String(length=255), nullable=True),
            sa.Column('password_hash', sa.String(length=255), nullable=True),
            sa.Column(
                'role',
                sa.Enum('EMPLOYEE', 'APPROVER', 'HR', 'ADMIN', name='employee_role'),
                nullable=False,
            ),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('position', sa.String(length=120), nullable=True),
            sa.Column('department', sa.String(length=120), nullable=True),
            sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=True),
            sa.Column('bonus_2024', sa.Numeric(12, 2), nullable=True),
            sa.Column('bonus_2025', sa.Numeric(12, 2), nullable=True),
            sa.Column('entered_by_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
            sa.Column('entered_at', sa.DateTime(), nullable=True),
            sa.Column('supervisor_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
            sa.Column('supervisor_name', sa.String(length=255), nullable=True),
            *level_columns,
            sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
        )
        op.create_index('ix_employees_employee_id', 'employees', ['employee_id'], unique=True)
        op.create_index('ix_employees_email', 'employees', ['email'], unique=True)
        op.create_index('ix_employees_branch_id', 'employees', ['branch_id'])
        op.create_index('ix_employees_supervisor_id', 'employees', ['supervisor_id'])
        for level in LEVELS:
            op.create_index(f'ix_employees_level{level}_approver_id', 'employees', [f'level{level}_approver_id'])

    if 'bonus_level_approvals' not in tables:
        op.create_table(
            'bonus_level_approvals',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=False),
            sa.Column('level', sa.Integer(), nullable=False),
            sa.Column(
                'status',
                sa.Enum('PENDING', 'APPROVED', 'REJECTED', 'NOT_REQUIRED', name='bonus_level_status'),
                nullable=False,
            ),
            sa.Column('approved_by_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
            sa.Column('approved_at', sa.DateTime(), nullable=True),
            sa.Column('comments', sa.Text(), nullable=True),
            sa.UniqueConstraint('employee_id', 'level', name='uq_bonus_level_approvals_employee_level'),
        )
        op.create_index('ix_bonus_level_approvals_employee_id', 'bonus_level_approvals', ['employee_id'])
        op.create_index('ix_bonus_level_approvals_approved_by_id', 'bonus_level_approvals', ['approved_by_id'])

    if 'audit_logs' not in tables:
        op.create_table(
            'audit_logs',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('entity_type', sa.String(length=120), nullable=False),
            sa.Column('entity_id', sa.Integer(), nullable=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('employees.id'), nullable=True),
            sa.Column('action', sa.String(length=120), nullable=False),
            sa.Column('timestamp', sa.DateTime(), server_default=sa.func.now(), nullable=False),
            sa.Column('extra_data', sa.JSON(), nullable=True),
        )


def downgrade():
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    tables = inspector.get_table_names()

    if 'audit_logs' in tables:
        op.drop_table('audit_logs')
    if 'bonus_level_approvals' in tables:
        op.drop_index('ix_bonus_level_approvals_approved_by_id', table_name='bonus_level_approvals')
        op.drop_index('ix_bonus_level_approvals_employee_id', table_name='bonus_level_approvals')
        op.drop_table('bonus_level_approvals')
    if 'employees' in tables:
        for level in LEVELS:
            op.drop_index(f'ix_employees_level{level}_approver_id', table_name='employees')
        op.drop_index('ix_employees_supervisor_id', table_name='employees')
        op.drop_index('ix_employees_branch_id', table_name='employees')
        op.drop_index('ix_employees_email', table_name='employees')
        op.drop_index('ix_employees_employee_id', table_name='employees')
        op.drop_table('employees')
    if 'branches' in tables:
        op.drop_index('ix_branches_branch_code', table_name='branches')
        op.drop_table('branches')
