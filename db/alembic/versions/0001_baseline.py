"""Baseline schema: projects, prompt templates, overrides and telemetry.

Revision ID: 0001_baseline
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_baseline"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "pgcrypto"')

    op.execute("""
        CREATE TABLE IF NOT EXISTS projects (
            id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id           UUID NOT NULL,
            name              VARCHAR(255),
            description       TEXT,
            requirements      TEXT,
            tech_stack        JSONB NOT NULL DEFAULT '[]'::jsonb,
            financial_domain  VARCHAR(255),
            trading_venue     VARCHAR(255),
            status            VARCHAR(50) NOT NULL DEFAULT 'created',
            blueprint         JSONB,
            components        JSONB NOT NULL DEFAULT '[]'::jsonb,
            created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at        TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute("CREATE INDEX IF NOT EXISTS idx_projects_user_id ON projects(user_id)")

    op.execute("""
        CREATE TABLE IF NOT EXISTS prompt_templates (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name         VARCHAR(200) NOT NULL,
            version      INTEGER NOT NULL CHECK (version > 0),
            content      TEXT NOT NULL,
            description  TEXT NOT NULL DEFAULT '',
            category     VARCHAR(50) NOT NULL DEFAULT 'general'
                         CHECK (category IN ('general', 'requirements', 'blueprint',
                                             'component', 'support', 'chat')),
            variables    JSONB NOT NULL DEFAULT '[]'::jsonb,
            tags         JSONB NOT NULL DEFAULT '[]'::jsonb,
            active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_by   VARCHAR(255),
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (name, version)
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_prompt_templates_category ON prompt_templates(category)"
    )

    op.execute("""
        CREATE TABLE IF NOT EXISTS project_prompt_templates (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            project_id   UUID NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
            based_on     UUID,
            name         VARCHAR(200) NOT NULL,
            version      INTEGER NOT NULL CHECK (version > 0),
            content      TEXT NOT NULL,
            description  TEXT NOT NULL DEFAULT '',
            category     VARCHAR(50) NOT NULL DEFAULT 'general',
            variables    JSONB NOT NULL DEFAULT '[]'::jsonb,
            tags         JSONB NOT NULL DEFAULT '[]'::jsonb,
            active       BOOLEAN NOT NULL DEFAULT TRUE,
            created_by   VARCHAR(255),
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            UNIQUE (project_id, name, version)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS prompt_components (
            id           UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            name         VARCHAR(200) NOT NULL UNIQUE,
            content      TEXT NOT NULL,
            category     VARCHAR(100) NOT NULL,
            description  TEXT NOT NULL DEFAULT '',
            created_at   TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at   TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_prompt_components_category ON prompt_components(category)"
    )

    # template_id is a weak reference: no foreign key, records outlive templates.
    op.execute("""
        CREATE TABLE IF NOT EXISTS prompt_performance (
            id               UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            template_id      UUID NOT NULL,
            conversation_id  VARCHAR(255) NOT NULL,
            input_tokens     INTEGER NOT NULL DEFAULT 0,
            output_tokens    INTEGER NOT NULL DEFAULT 0,
            total_tokens     INTEGER NOT NULL DEFAULT 0,
            latency_ms       DOUBLE PRECISION NOT NULL DEFAULT 0,
            success          BOOLEAN NOT NULL,
            error_details    TEXT,
            created_at       TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)
    op.execute(
        "CREATE INDEX IF NOT EXISTS idx_prompt_performance_template "
        "ON prompt_performance(template_id, created_at DESC)"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS prompt_performance")
    op.execute("DROP TABLE IF EXISTS prompt_components")
    op.execute("DROP TABLE IF EXISTS project_prompt_templates")
    op.execute("DROP TABLE IF EXISTS prompt_templates")
    op.execute("DROP TABLE IF EXISTS projects")
