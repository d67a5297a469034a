# ============================================================================
# PYDANTIC TO SQL GENERATOR
# ============================================================================
# STATUS: Core - DDL generation from Pydantic models
# PURPOSE: Generate PostgreSQL CREATE statements from Pydantic models
# CREATED: 07 OCT 2026
# EXPORTS: PydanticToSQL
# DEPENDENCIES: pydantic, psycopg
# ============================================================================
"""
Pydantic to PostgreSQL Schema Generator.

Pydantic models are the SINGLE SOURCE OF TRUTH for schema.

Model Metadata Convention:
    - __sql_table__: Table name
    - __sql_schema__: Schema name
    - __sql_primary_key__: Primary key column(s)
    - __sql_indexes__: List of (name, columns[, partial_where]) tuples

Usage:
    generator = PydanticToSQL(schema_name="ctrl")
    statements = generator.generate_all()
    for stmt in statements:
        cursor.execute(stmt)
"""

import logging
import re
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Type, Union, get_args, get_origin

from annotated_types import MaxLen
from psycopg import sql
from pydantic import BaseModel
from pydantic.fields import FieldInfo

logger = logging.getLogger(__name__)


class PydanticToSQL:
    """
    Convert Pydantic models to PostgreSQL DDL statements.
    """

    TYPE_MAP = {
        str: "VARCHAR",
        int: "INTEGER",
        float: "DOUBLE PRECISION",
        bool: "BOOLEAN",
        datetime: "TIMESTAMPTZ",
        dict: "JSONB",
        list: "JSONB",
    }

    def __init__(self, schema_name: str = "ctrl"):
        self.schema_name = schema_name
        self.enums: Dict[str, Type[Enum]] = {}

    @staticmethod
    def get_model_metadata(model: Type[BaseModel]) -> Dict[str, Any]:
        """Extract __sql_* metadata from a model class."""
        primary_key = getattr(model, "__sql_primary_key__", [])
        if isinstance(primary_key, str):
            primary_key = [primary_key]
        return {
            "table": getattr(model, "__sql_table__", None),
            "schema": getattr(model, "__sql_schema__", "ctrl"),
            "primary_key": primary_key,
            "indexes": getattr(model, "__sql_indexes__", []),
        }

    @staticmethod
    def enum_type_name(enum_class: Type[Enum]) -> str:
        """CamelCase enum class name -> snake_case PostgreSQL type name."""
        return re.sub(r"(?<!^)(?=[A-Z])", "_", enum_class.__name__).lower()

    # =========================================================================
    # TYPE CONVERSION
    # =========================================================================

    def python_type_to_sql(self, field_type: Type, field_info: FieldInfo) -> str:
        actual_type = field_type
        origin = get_origin(field_type)

        if origin is Union:
            args = [a for a in get_args(field_type) if a is not type(None)]
            actual_type = args[0]
            origin = get_origin(actual_type)

        if origin in (dict, list):
            return "JSONB"

        if actual_type is str:
            for constraint in field_info.metadata or []:
                if isinstance(constraint, MaxLen):
                    return f"VARCHAR({constraint.max_length})"
            return "VARCHAR"

        if isinstance(actual_type, type) and issubclass(actual_type, Enum):
            enum_name = self.enum_type_name(actual_type)
            self.enums[enum_name] = actual_type
            return enum_name

        return self.TYPE_MAP.get(actual_type, "JSONB")

    @staticmethod
    def is_optional(field_type: Type) -> bool:
        return get_origin(field_type) is Union and type(None) in get_args(field_type)

    # =========================================================================
    # DDL GENERATION
    # =========================================================================

    def generate_enum(self, enum_name: str, enum_class: Type[Enum], schema: str) -> sql.Composed:
        """
        CREATE TYPE guarded by a DO block so redeploys never drop columns.
        """
        values = ", ".join(f"'{member.value}'" for member in enum_class)
        return sql.SQL(
            "DO $$ BEGIN "
            "IF NOT EXISTS (SELECT 1 FROM pg_type WHERE typname = {name} "
            "AND typnamespace = (SELECT oid FROM pg_namespace WHERE nspname = {schema_lit})) THEN "
            "CREATE TYPE {schema}.{type} AS ENUM (" + values + "); "
            "END IF; END $$"
        ).format(
            name=sql.Literal(enum_name),
            schema_lit=sql.Literal(schema),
            schema=sql.Identifier(schema),
            type=sql.Identifier(enum_name),
        )

    def generate_table(self, model: Type[BaseModel]) -> sql.Composed:
        meta = self.get_model_metadata(model)
        table_name = meta["table"]
        schema_name = meta["schema"]
        primary_key = meta["primary_key"]

        if not table_name:
            raise ValueError(f"Model {model.__name__} missing __sql_table__ attribute")

        logger.debug(f"Generating table {schema_name}.{table_name} from {model.__name__}")

        columns = []
        for field_name, field_info in model.model_fields.items():
            sql_type = self.python_type_to_sql(field_info.annotation, field_info)

            parts = [sql.Identifier(field_name), sql.SQL(" ")]
            if sql_type in self.enums:
                parts.append(sql.SQL("{}.{}").format(sql.Identifier(schema_name), sql.Identifier(sql_type)))
            else:
                parts.append(sql.SQL(sql_type))

            if not self.is_optional(field_info.annotation) and field_name not in primary_key:
                parts.append(sql.SQL(" NOT NULL"))

            default = field_info.default
            if isinstance(default, Enum):
                parts.append(sql.SQL(" DEFAULT {}").format(sql.Literal(default.value)))
            elif isinstance(default, (int, str)) and not isinstance(default, bool):
                parts.append(sql.SQL(" DEFAULT {}").format(sql.Literal(default)))
            elif field_name in ("created_at", "updated_at"):
                parts.append(sql.SQL(" DEFAULT NOW()"))
            elif sql_type == "JSONB" and field_info.default_factory is not None:
                parts.append(sql.SQL(" DEFAULT '{}'"))

            columns.append(sql.Composed(parts))

        if primary_key:
            columns.append(sql.SQL("PRIMARY KEY ({})").format(
                sql.SQL(", ").join(sql.Identifier(col) for col in primary_key)
            ))

        return sql.SQL("CREATE TABLE IF NOT EXISTS {}.{} ({})").format(
            sql.Identifier(schema_name),
            sql.Identifier(table_name),
            sql.SQL(", ").join(columns),
        )

    def generate_indexes(self, model: Type[BaseModel]) -> List[sql.Composed]:
        meta = self.get_model_metadata(model)
        result = []
        for idx_def in meta["indexes"]:
            name, columns = idx_def[0], idx_def[1]
            partial_where = idx_def[2] if len(idx_def) > 2 else None
            stmt = sql.SQL("CREATE INDEX IF NOT EXISTS {} ON {}.{} ({})").format(
                sql.Identifier(name),
                sql.Identifier(meta["schema"]),
                sql.Identifier(meta["table"]),
                sql.SQL(", ").join(sql.Identifier(col) for col in columns),
            )
            if partial_where:
                stmt = sql.Composed([stmt, sql.SQL(" WHERE " + partial_where)])
            result.append(stmt)
        return result

    def generate_all(self) -> List[sql.Composed]:
        """
        Generate complete DDL for the control plane schema.
        """
        from core.models import ResourceRecord

        statements = [
            sql.SQL("CREATE SCHEMA IF NOT EXISTS {}").format(sql.Identifier(self.schema_name))
        ]

        # Table first so enum types referenced by columns are collected
        table = self.generate_table(ResourceRecord)
        for enum_name, enum_class in self.enums.items():
            statements.append(self.generate_enum(enum_name, enum_class, self.schema_name))
        statements.append(table)
        statements.extend(self.generate_indexes(ResourceRecord))

        logger.info(f"Generated {len(statements)} DDL statements for schema {self.schema_name}")
        return statements

    async def execute(self, conn, dry_run: bool = False) -> int:
        """
        Execute all DDL statements on an async psycopg connection.

        Returns:
            Number of statements executed
        """
        statements = self.generate_all()

        if dry_run:
            for stmt in statements:
                logger.info(f"[DRY RUN] {stmt.as_string(conn)}")
            return len(statements)

        for stmt in statements:
            await conn.execute(stmt)

        logger.info(f"Executed {len(statements)} DDL statements")
        return len(statements)


__all__ = ["PydanticToSQL"]
