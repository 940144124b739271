"""DDL generation: plain and idempotent output, and parse round trips."""

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / "packages" / "core_engine" / "src"))

from sg_core.generators import generate_sql_ddl, render_type
from sg_core.importers import parse_ddl
from sg_core.model import (
    MAX_LENGTH,
    Column,
    Database,
    ForeignKeyRef,
    Index,
    Schema,
    Table,
    database_to_dict,
    is_referenceable,
    reconcile_table,
)

STAMP = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)

SHOP_DDL = """
CREATE SCHEMA [sales];
GO
CREATE TABLE [dbo].[Customers] (
    [Id] INT IDENTITY(1,1) NOT NULL,
    [Email] NVARCHAR(320) NOT NULL UNIQUE,
    [Region] NVARCHAR(5) NOT NULL,
    [Handle] NVARCHAR(30) NOT NULL,
    [Notes] NVARCHAR(MAX) NULL,
    CONSTRAINT [PK_Customers] PRIMARY KEY ([Id]),
    CONSTRAINT [UQ_Customers_Region_Handle] UNIQUE ([Region], [Handle])
);
GO
CREATE TABLE [sales].[Orders] (
    [Id] INT IDENTITY(1,1) NOT NULL,
    [Number] VARCHAR(20) NOT NULL,
    [CustomerId] INT NULL,
    [Total] DECIMAL(12,2) NOT NULL DEFAULT 0,
    [Placed] DATETIME2(3) NOT NULL DEFAULT GETDATE(),
    CONSTRAINT [PK_Orders] PRIMARY KEY NONCLUSTERED ([Id])
);
GO
CREATE UNIQUE CLUSTERED INDEX [UX_Orders_Number] ON [sales].[Orders] ([Number]);
CREATE INDEX [IX_Orders_Placed] ON [sales].[Orders] ([Placed]);
ALTER TABLE [sales].[Orders] ADD CONSTRAINT [FK_Orders_Customers]
    FOREIGN KEY ([CustomerId]) REFERENCES [dbo].[Customers] ([Id]);
"""


def _products_database() -> Database:
    table = Table(
        name="Products",
        columns=[
            Column(name="Id", type="INT", is_primary_key=True, is_nullable=False, default_value="IDENTITY"),
            Column(name="Name", type="NVARCHAR", length=255, is_nullable=False),
            Column(name="Price", type="DECIMAL", precision=10, scale=2, is_nullable=False),
            Column(name="Sku", type="VARCHAR", length=40, is_nullable=False, is_unique_constraint=True),
        ],
    )
    reconcile_table(table)
    return Database(name="Catalog", schemas=[Schema(name="dbo", tables=[table])])


class TestRoundTrip:
    def test_hand_built_table(self):
        original = _products_database()
        parsed = parse_ddl(generate_sql_ddl(original, generated_at=STAMP), "Catalog")
        assert database_to_dict(parsed) == database_to_dict(original)

    @pytest.mark.parametrize("idempotent", [False, True])
    def test_parsed_script(self, idempotent):
        first = parse_ddl(SHOP_DDL, "Shop")
        text = generate_sql_ddl(first, idempotent=idempotent, generated_at=STAMP)
        second = parse_ddl(text, "Shop")
        assert database_to_dict(second) == database_to_dict(first)

    def test_parsed_script_details_survive(self):
        db = parse_ddl(generate_sql_ddl(parse_ddl(SHOP_DDL, "Shop"), idempotent=True), "Shop")
        orders = db.find_table("sales", "Orders")
        assert orders.primary_key.is_clustered is False
        assert orders.find_index("UX_Orders_Number").is_clustered is True
        assert orders.find_column("CustomerId").fk_constraint_name == "FK_Orders_Customers"
        assert orders.find_column("Placed").precision == 3
        customers = db.find_table("dbo", "Customers")
        assert customers.find_column("Notes").length == MAX_LENGTH
        assert [uc.columns for uc in customers.unique_constraints] == [["Email"], ["Region", "Handle"]]

    def test_single_unique_inside_multi_column_unique_survives(self):
        ddl = """
        CREATE TABLE T (
            Id INT NOT NULL PRIMARY KEY,
            A INT NOT NULL,
            B INT NOT NULL,
            CONSTRAINT [UQ_a] UNIQUE ([A]),
            CONSTRAINT [UQ_ab] UNIQUE ([A], [B])
        );
        CREATE TABLE R (Id INT NOT NULL PRIMARY KEY, AId INT NULL REFERENCES T(A));
        """
        text = generate_sql_ddl(parse_ddl(ddl, "Db"), generated_at=STAMP)
        assert "ALTER TABLE [dbo].[T] ADD CONSTRAINT [UQ_a] UNIQUE ([A]);" in text
        assert "ALTER TABLE [dbo].[T] ADD CONSTRAINT [UQ_ab] UNIQUE ([A], [B]);" in text

        table = parse_ddl(text, "Db").find_table("dbo", "T")
        assert [(uc.name, uc.columns) for uc in table.unique_constraints] == [
            ("UQ_a", ["A"]),
            ("UQ_ab", ["A", "B"]),
        ]
        assert is_referenceable(table, "A")

    def test_quoted_names_survive(self):
        table = Table(name="Odd]Name", columns=[Column(name="Id", type="INT", is_primary_key=True)])
        reconcile_table(table)
        db = Database(name="Db", schemas=[Schema(name="dbo"), Schema(name="o'neil", tables=[table])])
        parsed = parse_ddl(generate_sql_ddl(db, idempotent=True), "Db")
        assert [schema.name for schema in parsed.schemas] == ["dbo", "o'neil"]
        assert parsed.find_table("o'neil", "Odd]Name") is not None


class TestPlainOutput:
    def test_header_and_use(self):
        text = generate_sql_ddl(_products_database(), generated_at=STAMP)
        assert text.startswith(
            "-- Database: Catalog\n"
            "-- Generated by sqlgem at 2024-01-02T03:04:05+00:00\n"
            "\nUSE [Catalog];\nGO\n"
        )
        assert "Idempotent" not in text
        assert "IF NOT EXISTS" not in text

    def test_create_table_layout(self):
        text = generate_sql_ddl(_products_database(), generated_at=STAMP)
        assert (
            "CREATE TABLE [dbo].[Products] (\n"
            "    [Id] INT IDENTITY(1,1) NOT NULL,\n"
            "    [Name] NVARCHAR(255) NOT NULL,\n"
            "    [Price] DECIMAL(10,2) NOT NULL,\n"
            "    [Sku] VARCHAR(40) NOT NULL,\n"
            "    CONSTRAINT [PK_Products] PRIMARY KEY CLUSTERED ([Id])\n"
            ");\nGO\n"
        ) in text
        assert "ALTER TABLE [dbo].[Products] ADD CONSTRAINT [UQ_Products_Sku] UNIQUE ([Sku]);\nGO\n" in text

    def test_sections_follow_tables(self):
        text = generate_sql_ddl(parse_ddl(SHOP_DDL, "Shop"), generated_at=STAMP)
        positions = [
            text.index("-- Create Schemas"),
            text.index("-- Schema: dbo"),
            text.index("-- Schema: sales"),
            text.index("-- Unique Constraints"),
            text.index("-- Indexes"),
            text.index("-- Foreign Key Constraints"),
        ]
        assert positions == sorted(positions)
        assert "CREATE SCHEMA [dbo]" not in text
        assert "CREATE SCHEMA [sales];\nGO\n" in text
        assert "-- Table: sales.Orders\n" in text
        assert "CONSTRAINT [PK_Orders] PRIMARY KEY NONCLUSTERED ([Id])" in text
        assert "[Total] DECIMAL(12,2) NOT NULL DEFAULT 0" in text
        assert "CREATE UNIQUE CLUSTERED INDEX [UX_Orders_Number] ON [sales].[Orders] ([Number]);" in text
        assert "CREATE NONCLUSTERED INDEX [IX_Orders_Placed] ON [sales].[Orders] ([Placed]);" in text
        assert (
            "ALTER TABLE [sales].[Orders]\n"
            "    ADD CONSTRAINT [FK_Orders_Customers]\n"
            "    FOREIGN KEY ([CustomerId])\n"
            "    REFERENCES [dbo].[Customers]([Id]);"
        ) in text

    def test_empty_schemas_get_no_table_section(self):
        db = Database(name="Db", schemas=[Schema(name="dbo"), Schema(name="audit")])
        text = generate_sql_ddl(db, generated_at=STAMP)
        assert "CREATE SCHEMA [audit];" in text
        assert "-- Schema:" not in text

    def test_missing_names_are_generated(self):
        customers = Table(name="Customers", columns=[Column(name="Id", type="INT", is_primary_key=True)])
        orders = Table(
            name="Orders",
            columns=[
                Column(name="Id", type="INT", is_primary_key=True),
                Column(name="CustomerId", type="INT", foreign_key_ref=ForeignKeyRef("dbo", "Customers", "Id")),
            ],
            indexes=[Index(name="", columns=["CustomerId"])],
        )
        db = Database(name="Db", schemas=[Schema(name="dbo", tables=[customers, orders])])
        text = generate_sql_ddl(db, generated_at=STAMP)
        assert "CREATE NONCLUSTERED INDEX [IX_Orders_CustomerId]" in text
        assert "ADD CONSTRAINT [FK_Orders_CustomerId]" in text

    def test_flags_without_structures(self):
        table = Table(
            name="T",
            columns=[
                Column(name="Id", type="INT", is_primary_key=True, pk_name="PK_Custom"),
                Column(name="Code", type="NCHAR", length=3, is_unique_constraint=True),
            ],
        )
        db = Database(name="Db", schemas=[Schema(name="dbo", tables=[table])])
        text = generate_sql_ddl(db, generated_at=STAMP)
        assert "    [Id] INT NOT NULL,\n" in text
        assert "CONSTRAINT [PK_Custom] PRIMARY KEY CLUSTERED ([Id])" in text
        assert "ADD CONSTRAINT [UQ_T_Code] UNIQUE ([Code]);" in text


class TestIdempotentOutput:
    def test_every_statement_is_guarded(self):
        text = generate_sql_ddl(parse_ddl(SHOP_DDL, "Shop"), idempotent=True, generated_at=STAMP)
        assert "-- Idempotent DDL: Safe to run multiple times\n" in text
        assert "IF NOT EXISTS (SELECT * FROM sys.schemas WHERE name = N'sales')" in text
        assert "    EXEC('CREATE SCHEMA [sales]');" in text
        assert (
            "IF NOT EXISTS (SELECT * FROM sys.objects WHERE object_id = "
            "OBJECT_ID(N'[sales].[Orders]') AND type = 'U')"
        ) in text
        assert "SELECT * FROM sys.key_constraints WHERE name = N'UQ_Customers_Email'" in text
        assert "SELECT * FROM sys.indexes WHERE name = N'IX_Orders_Placed'" in text
        assert "SELECT * FROM sys.foreign_keys WHERE name = N'FK_Orders_Customers'" in text

        statements = [
            line for line in text.splitlines() if line.startswith(("CREATE ", "ALTER ", "EXEC"))
        ]
        assert statements == []
        assert text.count("IF NOT EXISTS") == text.count("\nEND\nGO\n")

    def test_blocks_are_separated_by_go(self):
        text = generate_sql_ddl(parse_ddl(SHOP_DDL, "Shop"), idempotent=True, generated_at=STAMP)
        lines = text.splitlines()
        for position, line in enumerate(lines):
            if line == "END":
                assert lines[position + 1] == "GO"

    def test_output_is_stable(self):
        db = parse_ddl(SHOP_DDL, "Shop")
        assert generate_sql_ddl(db, idempotent=True, generated_at=STAMP) == generate_sql_ddl(
            db, idempotent=True, generated_at=STAMP
        )

        def without_stamp(text):
            return "\n".join(line for line in text.splitlines() if not line.startswith("-- Generated"))

        later = datetime(2030, 6, 1, tzinfo=timezone.utc)
        assert without_stamp(generate_sql_ddl(db, idempotent=True, generated_at=STAMP)) == without_stamp(
            generate_sql_ddl(db, idempotent=True, generated_at=later)
        )


class TestRenderType:
    @pytest.mark.parametrize(
        "column, expected",
        [
            (Column(name="a", type="nvarchar", length=MAX_LENGTH), "NVARCHAR(MAX)"),
            (Column(name="a", type="VARCHAR", length=50), "VARCHAR(50)"),
            (Column(name="a", type="DECIMAL", precision=18), "DECIMAL(18)"),
            (Column(name="a", type="NUMERIC", precision=9, scale=4), "NUMERIC(9,4)"),
            (Column(name="a", type="DATETIME2", precision=7), "DATETIME2(7)"),
            (Column(name="a", type="INT", precision=10), "INT"),
            (Column(name="a", type="VARCHAR(10)"), "VARCHAR(10)"),
            (Column(name="a", type="BIT"), "BIT"),
        ],
    )
    def test_render(self, column, expected):
        assert render_type(column) == expected
