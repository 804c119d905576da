"""Catalog queries, one per metadata facet."""

from __future__ import annotations

DATABASES = """
    SELECT datname AS name, datname = current_database() AS is_current
    FROM pg_database
    WHERE datistemplate = false
    ORDER BY datname = current_database() DESC, datname
"""

SCHEMAS = """
    SELECT schema_name AS name, schema_owner AS owner
    FROM information_schema.schemata
    WHERE schema_name <> ALL($1::text[])
    ORDER BY schema_name
"""

TABLES = """
    SELECT
        t.table_schema AS schema,
        t.table_name AS name,
        t.table_type,
        COALESCE(c.reltuples::bigint, 0) AS row_estimate,
        COALESCE(
            pg_size_pretty(pg_total_relation_size(quote_ident(t.table_schema) || '.' || quote_ident(t.table_name))),
            '0 bytes'
        ) AS size
    FROM information_schema.tables t
    LEFT JOIN pg_namespace n ON n.nspname = t.table_schema
    LEFT JOIN pg_class c ON c.relname = t.table_name AND c.relnamespace = n.oid
    WHERE t.table_schema = $1
      AND t.table_type IN ('BASE TABLE', 'VIEW')
    ORDER BY t.table_name
"""

COLUMNS = """
    SELECT
        c.column_name AS name,
        c.data_type,
        c.is_nullable = 'YES' AS is_nullable,
        c.column_default,
        COALESCE(pk.is_pk, false) AS is_primary_key,
        COALESCE(fk.is_fk, false) AS is_foreign_key,
        fk.foreign_table,
        fk.foreign_column,
        c.ordinal_position::int AS ordinal_position
    FROM information_schema.columns c
    LEFT JOIN (
        SELECT DISTINCT kcu.column_name, true AS is_pk
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
            ON tc.constraint_name = kcu.constraint_name
            AND tc.table_schema = kcu.table_schema
        WHERE tc.constraint_type = 'PRIMARY KEY'
            AND tc.table_schema = $1
            AND tc.table_name = $2
    ) pk ON pk.column_name = c.column_name
    LEFT JOIN (
        SELECT DISTINCT ON (kcu.column_name)
            kcu.column_name,
            true AS is_fk,
            ccu.table_name AS foreign_table,
            ccu.column_name AS foreign_column
        FROM information_schema.table_constraints tc
        JOIN information_schema.key_column_usage kcu
            ON tc.constraint_name = kcu.constraint_name
            AND tc.table_schema = kcu.table_schema
        JOIN information_schema.constraint_column_usage ccu
            ON ccu.constraint_name = tc.constraint_name
        WHERE tc.constraint_type = 'FOREIGN KEY'
            AND tc.table_schema = $1
            AND tc.table_name = $2
        ORDER BY kcu.column_name, tc.constraint_name
    ) fk ON fk.column_name = c.column_name
    WHERE c.table_schema = $1 AND c.table_name = $2
    ORDER BY c.ordinal_position
"""

CONSTRAINTS = """
    SELECT
        con.conname AS name,
        CASE con.contype
            WHEN 'p' THEN 'PRIMARY KEY'
            WHEN 'f' THEN 'FOREIGN KEY'
            WHEN 'u' THEN 'UNIQUE'
            WHEN 'c' THEN 'CHECK'
            WHEN 'x' THEN 'EXCLUSION'
            ELSE con.contype::text
        END AS constraint_type,
        COALESCE(
            (SELECT array_agg(a.attname::text ORDER BY k.ord)
             FROM unnest(con.conkey) WITH ORDINALITY AS k(col, ord)
             JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.col),
            ARRAY[]::text[]
        ) AS columns,
        pg_get_constraintdef(con.oid, true) AS definition,
        CASE WHEN con.contype = 'f'
            THEN (SELECT nsp.nspname || '.' || rel.relname
                  FROM pg_class rel JOIN pg_namespace nsp ON nsp.oid = rel.relnamespace
                  WHERE rel.oid = con.confrelid)
        END AS foreign_table,
        CASE WHEN con.contype = 'f'
            THEN (SELECT string_agg(a.attname, ', ' ORDER BY k.ord)
                  FROM unnest(con.confkey) WITH ORDINALITY AS k(col, ord)
                  JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.col)
        END AS foreign_columns
    FROM pg_constraint con
    JOIN pg_class c ON c.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1 AND c.relname = $2
    ORDER BY con.contype, con.conname
"""

INDEXES = """
    SELECT
        i.relname AS name,
        pg_get_indexdef(i.oid) AS definition,
        ix.indisunique AS is_unique,
        ix.indisprimary AS is_primary,
        am.amname AS index_type,
        COALESCE(pg_size_pretty(pg_relation_size(i.oid)), '0 bytes') AS size,
        (SELECT string_agg(a.attname, ', ' ORDER BY k.ord)
         FROM unnest(ix.indkey) WITH ORDINALITY AS k(col, ord)
         JOIN pg_attribute a ON a.attrelid = ix.indrelid AND a.attnum = k.col
         WHERE a.attnum > 0) AS columns
    FROM pg_index ix
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    JOIN pg_am am ON am.oid = i.relam
    WHERE n.nspname = $1 AND t.relname = $2
    ORDER BY i.relname
"""

TRIGGERS = """
    SELECT
        t.tgname AS name,
        CASE WHEN t.tgtype::int & 1 = 1 THEN 'ROW' ELSE 'STATEMENT' END AS orientation,
        CASE
            WHEN t.tgtype::int & 2 = 2 THEN 'BEFORE'
            WHEN t.tgtype::int & 64 = 64 THEN 'INSTEAD OF'
            ELSE 'AFTER'
        END AS timing,
        array_to_string(ARRAY[]::text[]
            || CASE WHEN t.tgtype::int & 4 = 4 THEN 'INSERT' END
            || CASE WHEN t.tgtype::int & 8 = 8 THEN 'DELETE' END
            || CASE WHEN t.tgtype::int & 16 = 16 THEN 'UPDATE' END
            || CASE WHEN t.tgtype::int & 32 = 32 THEN 'TRUNCATE' END,
            ' OR ') AS event,
        p.proname AS function_name,
        pg_get_triggerdef(t.oid, true) AS definition,
        t.tgenabled <> 'D' AS enabled
    FROM pg_trigger t
    JOIN pg_class c ON c.oid = t.tgrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_proc p ON p.oid = t.tgfoid
    WHERE n.nspname = $1 AND c.relname = $2
      AND NOT t.tgisinternal
    ORDER BY t.tgname
"""

RULES = """
    SELECT
        r.rulename AS name,
        CASE r.ev_type
            WHEN '1' THEN 'SELECT'
            WHEN '2' THEN 'UPDATE'
            WHEN '3' THEN 'INSERT'
            WHEN '4' THEN 'DELETE'
            ELSE r.ev_type::text
        END AS event,
        r.is_instead,
        pg_get_ruledef(r.oid, true) AS definition
    FROM pg_rewrite r
    JOIN pg_class c ON c.oid = r.ev_class
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1 AND c.relname = $2
      AND r.rulename <> '_RETURN'
    ORDER BY r.rulename
"""

POLICIES = """
    SELECT
        pol.polname AS name,
        CASE pol.polcmd
            WHEN 'r' THEN 'SELECT'
            WHEN 'a' THEN 'INSERT'
            WHEN 'w' THEN 'UPDATE'
            WHEN 'd' THEN 'DELETE'
            WHEN '*' THEN 'ALL'
            ELSE pol.polcmd::text
        END AS command,
        pol.polpermissive AS permissive,
        COALESCE(
            (SELECT array_agg(r.rolname::text)
             FROM unnest(pol.polroles) AS role_oid
             JOIN pg_roles r ON r.oid = role_oid),
            ARRAY['PUBLIC']::text[]
        ) AS roles,
        pg_get_expr(pol.polqual, pol.polrelid, true) AS using_expr,
        pg_get_expr(pol.polwithcheck, pol.polrelid, true) AS check_expr
    FROM pg_policy pol
    JOIN pg_class c ON c.oid = pol.polrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE n.nspname = $1 AND c.relname = $2
    ORDER BY pol.polname
"""

__all__ = [
    "COLUMNS",
    "CONSTRAINTS",
    "DATABASES",
    "INDEXES",
    "POLICIES",
    "RULES",
    "SCHEMAS",
    "TABLES",
    "TRIGGERS",
]
