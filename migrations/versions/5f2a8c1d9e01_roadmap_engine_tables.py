"""roadmap_engine_tables

Create roles, membership, roadmap template, two-level stage and task tables.

Revision ID: 5f2a8c1d9e01
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "5f2a8c1d9e01"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name, nullable=True):
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "job_roles" not in existing_tables:
        op.create_table(
            "job_roles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=100), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            _ts("created_at", nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "projects" not in existing_tables:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("code", sa.String(length=50), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("status", sa.String(length=30), nullable=False, server_default="active"),
            _ts("created_at", nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("code"),
        )

    if "project_members" not in existing_tables:
        op.create_table(
            "project_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("job_role_id", sa.Integer(), nullable=True),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["job_role_id"], ["job_roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        )
        op.create_index("ix_project_members_project_id", "project_members", ["project_id"])
        op.create_index("ix_project_members_user_id", "project_members", ["user_id"])
        op.create_index("ix_project_members_project_role", "project_members", ["project_id", "job_role_id"])

    if "roadmap_stage_level1" not in existing_tables:
        op.create_table(
            "roadmap_stage_level1",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("order_index"),
        )

    if "roadmap_templates" not in existing_tables:
        op.create_table(
            "roadmap_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _ts("created_at", nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "roadmap_template_stages" not in existing_tables:
        op.create_table(
            "roadmap_template_stages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("level1_stage_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["template_id"], ["roadmap_templates.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["level1_stage_id"], ["roadmap_stage_level1.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("template_id", "order_index", name="uq_template_stage_order"),
        )
        op.create_index("ix_roadmap_template_stages_template_id", "roadmap_template_stages", ["template_id"])

    if "roadmap_template_tasks" not in existing_tables:
        op.create_table(
            "roadmap_template_tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("stage_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("job_role_id", sa.Integer(), nullable=True),
            sa.Column("duration_days", sa.Integer(), nullable=True),
            sa.Column("estimated_hours", sa.Float(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["stage_id"], ["roadmap_template_stages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["job_role_id"], ["job_roles.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("stage_id", "order_index", name="uq_template_task_order"),
            sa.CheckConstraint(
                "duration_days IS NULL OR duration_days > 0",
                name="ck_template_task_duration_positive",
            ),
        )
        op.create_index("ix_roadmap_template_tasks_stage_id", "roadmap_template_tasks", ["stage_id"])

    if "project_level1_stage_status" not in existing_tables:
        op.create_table(
            "project_level1_stage_status",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("level1_stage_id", sa.Integer(), nullable=False),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="locked"),
            _ts("started_at"),
            _ts("completed_at"),
            _ts("updated_at", nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["level1_stage_id"], ["roadmap_stage_level1.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "level1_stage_id", name="uq_level1_status_project_stage"),
            sa.UniqueConstraint("project_id", "order_index", name="uq_level1_status_project_order"),
        )
        op.create_index("ix_project_level1_stage_status_project_id", "project_level1_stage_status", ["project_id"])
        op.create_index(
            "ix_project_level1_stage_status_level1_stage_id",
            "project_level1_stage_status", ["level1_stage_id"],
        )

    if "project_roadmap_stages" not in existing_tables:
        op.create_table(
            "project_roadmap_stages",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("level1_stage_id", sa.Integer(), nullable=True),
            sa.Column("template_stage_id", sa.Integer(), nullable=True),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            _ts("started_at"),
            _ts("completed_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["level1_stage_id"], ["roadmap_stage_level1.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["template_stage_id"], ["roadmap_template_stages.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "order_index", name="uq_roadmap_stages_project_order"),
        )
        op.create_index("ix_project_roadmap_stages_project_id", "project_roadmap_stages", ["project_id"])
        op.create_index("ix_project_roadmap_stages_level1_stage_id", "project_roadmap_stages", ["level1_stage_id"])

    if "tasks" not in existing_tables:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("stage_id", sa.Integer(), nullable=False),
            sa.Column("template_task_id", sa.Integer(), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("tags", sa.JSON(), nullable=True),
            sa.Column("estimated_hours", sa.Float(), nullable=True),
            sa.Column("duration_days", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="todo"),
            sa.Column("priority", sa.String(length=20), nullable=False, server_default="medium"),
            sa.Column("assignee_id", sa.Integer(), nullable=True),
            sa.Column("auto_assigned", sa.Boolean(), nullable=False, server_default=sa.false()),
            _ts("deadline"),
            _ts("completed_at"),
            _ts("created_at", nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["stage_id"], ["project_roadmap_stages.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["template_task_id"], ["roadmap_template_tasks.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("stage_id", "template_task_id", name="uq_tasks_stage_template_task"),
        )
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
        op.create_index("ix_tasks_stage_id", "tasks", ["stage_id"])
        op.create_index("ix_tasks_assignee_id", "tasks", ["assignee_id"])
        op.create_index("ix_tasks_stage_created", "tasks", ["stage_id", "created_at"])


def downgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    for table in (
        "tasks",
        "project_roadmap_stages",
        "project_level1_stage_status",
        "roadmap_template_tasks",
        "roadmap_template_stages",
        "roadmap_templates",
        "roadmap_stage_level1",
        "project_members",
        "projects",
        "job_roles",
    ):
        if table in existing_tables:
            op.drop_table(table)
