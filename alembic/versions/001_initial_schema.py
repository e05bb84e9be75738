"""Initial database schema.

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True)


def _uuid_fk(name: str, target: str, ondelete: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        postgresql.UUID(as_uuid=True),
        sa.ForeignKey(target, ondelete=ondelete),
        nullable=nullable,
    )


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # Molecules, deduplicated by InChIKey
    op.create_table(
        "molecules",
        _uuid_pk(),
        sa.Column("inchikey", sa.String(64), nullable=False, unique=True),
        sa.Column("smiles", sa.Text, nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_molecules_smiles", "molecules", ["smiles"])

    # Stocks
    op.create_table(
        "stocks",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "stock_items",
        _uuid_pk(),
        _uuid_fk("stock_id", "stocks.id", "CASCADE"),
        _uuid_fk("molecule_id", "molecules.id", "RESTRICT"),
        sa.UniqueConstraint("stock_id", "molecule_id", name="uq_stock_molecule"),
    )
    op.create_index("ix_stock_items_stock_id", "stock_items", ["stock_id"])
    op.create_index("ix_stock_items_molecule_id", "stock_items", ["molecule_id"])

    # Routes and their node trees
    op.create_table(
        "routes",
        _uuid_pk(),
        sa.Column("signature", sa.String(256), nullable=False, unique=True),
        sa.Column("content_hash", sa.String(256), nullable=False, unique=True),
        sa.Column("length", sa.Integer, nullable=False),
        sa.Column("is_convergent", sa.Boolean, nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "route_nodes",
        _uuid_pk(),
        _uuid_fk("route_id", "routes.id", "CASCADE"),
        _uuid_fk("molecule_id", "molecules.id", "RESTRICT"),
        _uuid_fk("parent_id", "route_nodes.id", "CASCADE", nullable=True),
        sa.Column("is_leaf", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("position", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reaction_hash", sa.String(64), nullable=True),
        sa.Column("template", sa.String, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
    )
    op.create_index("ix_route_nodes_route_id", "route_nodes", ["route_id"])
    op.create_index("ix_route_nodes_molecule_id", "route_nodes", ["molecule_id"])
    op.create_index("ix_route_nodes_parent_id", "route_nodes", ["parent_id"])
    op.create_index("ix_route_nodes_reaction_hash", "route_nodes", ["reaction_hash"])

    # Benchmarks
    op.create_table(
        "benchmark_sets",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("description", sa.Text, nullable=True),
        _uuid_fk("stock_id", "stocks.id", "RESTRICT"),
        sa.Column("has_acceptable_routes", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("series", sa.String(50), nullable=False, server_default="OTHER"),
        sa.Column("is_listed", sa.Boolean, nullable=False, server_default="true"),
        *_timestamps(),
    )
    op.create_table(
        "benchmark_targets",
        _uuid_pk(),
        _uuid_fk("benchmark_set_id", "benchmark_sets.id", "CASCADE"),
        sa.Column("target_id", sa.String(200), nullable=False),
        _uuid_fk("molecule_id", "molecules.id", "RESTRICT"),
        sa.Column("route_length", sa.Integer, nullable=True),
        sa.Column("is_convergent", sa.Boolean, nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        sa.UniqueConstraint("benchmark_set_id", "target_id", name="uq_benchmark_target"),
    )
    op.create_index(
        "ix_benchmark_targets_benchmark_set_id",
        "benchmark_targets",
        ["benchmark_set_id"],
    )
    op.create_table(
        "acceptable_routes",
        _uuid_pk(),
        _uuid_fk("benchmark_target_id", "benchmark_targets.id", "CASCADE"),
        _uuid_fk("route_id", "routes.id", "CASCADE"),
        sa.Column("route_index", sa.Integer, nullable=False),
        sa.UniqueConstraint("benchmark_target_id", "route_index", name="uq_target_route_index"),
    )
    op.create_index(
        "ix_acceptable_routes_benchmark_target_id",
        "acceptable_routes",
        ["benchmark_target_id"],
    )
    op.create_index("ix_acceptable_routes_route_id", "acceptable_routes", ["route_id"])

    # Algorithms, model instances and their runs
    op.create_table(
        "algorithms",
        _uuid_pk(),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("paper", sa.Text, nullable=True),
        *_timestamps(),
    )
    op.create_table(
        "model_instances",
        _uuid_pk(),
        _uuid_fk("algorithm_id", "algorithms.id", "RESTRICT"),
        sa.Column("name", sa.String(200), nullable=False, unique=True),
        sa.Column("version", sa.String(50), nullable=True),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_model_instances_algorithm_id", "model_instances", ["algorithm_id"])
    op.create_table(
        "prediction_runs",
        _uuid_pk(),
        _uuid_fk("model_instance_id", "model_instances.id", "RESTRICT"),
        _uuid_fk("benchmark_set_id", "benchmark_sets.id", "RESTRICT"),
        sa.Column("retrocast_version", sa.String(50), nullable=True),
        sa.Column("command_params", postgresql.JSONB, nullable=True),
        sa.Column(
            "executed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("hourly_cost", sa.Float, nullable=True),
        sa.Column("total_cost", sa.Float, nullable=True),
        sa.Column("total_routes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("avg_route_length", sa.Float, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("model_instance_id", "benchmark_set_id", name="uq_model_benchmark"),
    )
    op.create_index("ix_prediction_runs_model_instance_id", "prediction_runs", ["model_instance_id"])
    op.create_index("ix_prediction_runs_benchmark_set_id", "prediction_runs", ["benchmark_set_id"])

    # Prediction linkages and their per-stock solvability
    op.create_table(
        "prediction_routes",
        _uuid_pk(),
        _uuid_fk("route_id", "routes.id", "CASCADE"),
        _uuid_fk("prediction_run_id", "prediction_runs.id", "CASCADE"),
        _uuid_fk("target_id", "benchmark_targets.id", "CASCADE"),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("metadata", postgresql.JSONB, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "route_id",
            "prediction_run_id",
            "target_id",
            name="uq_prediction_route_run_target",
        ),
        sa.UniqueConstraint(
            "prediction_run_id",
            "target_id",
            "rank",
            name="uq_prediction_run_target_rank",
        ),
        sa.CheckConstraint("rank >= 1", name="ck_prediction_routes_rank_positive"),
    )
    op.create_index("ix_prediction_routes_route_id", "prediction_routes", ["route_id"])
    op.create_index(
        "ix_prediction_routes_prediction_run_id",
        "prediction_routes",
        ["prediction_run_id"],
    )
    op.create_index("ix_prediction_routes_target_rank", "prediction_routes", ["target_id", "rank"])
    op.create_table(
        "route_solvabilities",
        _uuid_pk(),
        _uuid_fk("prediction_route_id", "prediction_routes.id", "CASCADE"),
        _uuid_fk("stock_id", "stocks.id", "RESTRICT"),
        sa.Column("is_solvable", sa.Boolean, nullable=False),
        sa.Column("matches_acceptable", sa.Boolean, nullable=False),
        sa.Column("matched_acceptable_index", sa.Integer, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("prediction_route_id", "stock_id", name="uq_prediction_stock"),
    )
    op.create_index(
        "ix_route_solvabilities_prediction_route_id",
        "route_solvabilities",
        ["prediction_route_id"],
    )

    # Run statistics
    op.create_table(
        "model_run_statistics",
        _uuid_pk(),
        _uuid_fk("prediction_run_id", "prediction_runs.id", "CASCADE"),
        _uuid_fk("benchmark_set_id", "benchmark_sets.id", "RESTRICT"),
        _uuid_fk("stock_id", "stocks.id", "RESTRICT"),
        sa.Column("statistics_json", sa.Text, nullable=False),
        sa.Column(
            "computed_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("prediction_run_id", "stock_id", name="uq_statistics_run_stock"),
    )
    op.create_index(
        "ix_model_run_statistics_prediction_run_id",
        "model_run_statistics",
        ["prediction_run_id"],
    )
    op.create_index("ix_model_run_statistics_stock_id", "model_run_statistics", ["stock_id"])
    op.create_table(
        "stratified_metric_groups",
        _uuid_pk(),
        _uuid_fk("statistics_id", "model_run_statistics.id", "CASCADE"),
        sa.Column("metric_name", sa.String(50), nullable=False),
        sa.Column("group_key", sa.Integer, nullable=True),
        sa.Column("value", sa.Float, nullable=False),
        sa.Column("ci_lower", sa.Float, nullable=False),
        sa.Column("ci_upper", sa.Float, nullable=False),
        sa.Column("n_samples", sa.Integer, nullable=False),
        sa.Column("reliability_code", sa.String(20), nullable=False),
        sa.Column("reliability_message", sa.Text, nullable=False),
    )
    op.create_index(
        "ix_metric_groups_statistics_metric",
        "stratified_metric_groups",
        ["statistics_id", "metric_name"],
    )
    op.create_index(
        "ix_metric_groups_metric_group",
        "stratified_metric_groups",
        ["metric_name", "group_key"],
    )


def downgrade() -> None:
    op.drop_table("stratified_metric_groups")
    op.drop_table("model_run_statistics")
    op.drop_table("route_solvabilities")
    op.drop_table("prediction_routes")
    op.drop_table("prediction_runs")
    op.drop_table("model_instances")
    op.drop_table("algorithms")
    op.drop_table("acceptable_routes")
    op.drop_table("benchmark_targets")
    op.drop_table("benchmark_sets")
    op.drop_table("route_nodes")
    op.drop_table("routes")
    op.drop_table("stock_items")
    op.drop_table("stocks")
    op.drop_table("molecules")
