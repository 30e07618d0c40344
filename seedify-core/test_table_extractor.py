"""
Regression tests for table reference extraction.

Tests extract_table_names() and normalize_query(). No DB required.
"""

import unittest
from table_extractor import (
    SQL_RESERVED_WORDS,
    TableReferenceExtractor,
    extract_table_names,
    is_reserved_word,
    normalize_query,
)


class TestNormalizeQuery(unittest.TestCase):

    def test_collapse_whitespace(self):
        self.assertEqual(
            normalize_query("SELECT *\n  FROM   users\n\tWHERE id = $1"),
            "SELECT * FROM users WHERE id = $1",
        )

    def test_empty(self):
        self.assertEqual(normalize_query(""), "")
        self.assertEqual(normalize_query("   \n "), "")

    def test_block_comment_removed(self):
        result = normalize_query("SELECT * /* hint */ FROM users")
        self.assertNotIn("hint", result)
        self.assertIn("FROM users", result)

    def test_line_comment_removed(self):
        result = normalize_query("SELECT * FROM users -- FROM secrets\nWHERE id = $1")
        self.assertNotIn("secrets", result)
        self.assertIn("WHERE id = $1", result)


class TestExtractTableNames(unittest.TestCase):
    """Tests for extract_table_names(), the per-query table list."""

    # --- Basic statements ---

    def test_simple_select(self):
        self.assertEqual(extract_table_names("SELECT * FROM users WHERE id = $1"), ["users"])

    def test_schema_qualified(self):
        self.assertEqual(extract_table_names("SELECT * FROM public.users"), ["public.users"])

    def test_lower_cased(self):
        self.assertEqual(extract_table_names("select * from Users"), ["users"])

    def test_insert(self):
        sql = "INSERT INTO users (name, email) VALUES ($1, $2)"
        self.assertEqual(extract_table_names(sql), ["users"])

    def test_update(self):
        sql = "UPDATE users SET name = $1 WHERE id = $2"
        self.assertEqual(extract_table_names(sql), ["users"])

    def test_delete(self):
        self.assertEqual(extract_table_names("DELETE FROM users WHERE id = $1"), ["users"])

    def test_no_tables(self):
        self.assertEqual(extract_table_names("SELECT 1"), [])
        self.assertEqual(extract_table_names(""), [])

    # --- Joins and ordering ---

    def test_join_order(self):
        sql = "SELECT * FROM users u JOIN orders o ON u.id = o.user_id"
        self.assertEqual(extract_table_names(sql), ["users", "orders"])

    def test_left_join(self):
        sql = "SELECT * FROM orders o LEFT OUTER JOIN users u ON u.id = o.user_id"
        self.assertEqual(extract_table_names(sql), ["orders", "users"])

    def test_from_tables_come_before_join_tables(self):
        sql = (
            "SELECT * FROM orders o JOIN users u ON u.id = o.user_id "
            "WHERE o.id IN (SELECT order_id FROM payments)"
        )
        self.assertEqual(extract_table_names(sql), ["orders", "payments", "users"])

    def test_distinct(self):
        sql = "SELECT * FROM users WHERE id IN (SELECT user_id FROM users)"
        self.assertEqual(extract_table_names(sql), ["users"])

    # --- Reserved words are never tables ---

    def test_lateral_not_a_table(self):
        sql = "SELECT * FROM users u JOIN LATERAL (SELECT * FROM logs) l ON true"
        self.assertEqual(extract_table_names(sql), ["users", "logs"])

    def test_subquery_after_from(self):
        self.assertEqual(extract_table_names("SELECT * FROM (SELECT 1) AS x"), [])

    def test_reserved_words_filtered_case_insensitively(self):
        for word in ("Select", "VALUES", "lateral", "Set"):
            with self.subTest(word=word):
                self.assertEqual(extract_table_names(f"SELECT x FROM {word}"), [])

    def test_no_reserved_word_in_results(self):
        queries = [
            "SELECT * FROM users WHERE id = $1",
            "INSERT INTO orders SELECT * FROM staging RETURNING id",
            "WITH RECURSIVE t AS (SELECT 1) SELECT * FROM t",
            "DELETE FROM sessions WHERE expires_at < $1",
        ]
        for sql in queries:
            for name in extract_table_names(sql):
                self.assertNotIn(name, SQL_RESERVED_WORDS)

    # --- Comments ---

    def test_commented_out_table_ignored(self):
        sql = "SELECT * FROM users -- JOIN audit_log\nWHERE id = $1"
        self.assertEqual(extract_table_names(sql), ["users"])

    # --- Known limitation ---

    def test_cte_names_reported(self):
        sql = (
            "WITH RECURSIVE category_tree AS ("
            "SELECT id, parent_id FROM uc_categories WHERE id = $1 "
            "UNION ALL SELECT c.id, c.parent_id FROM uc_categories c "
            "JOIN category_tree ct ON c.parent_id = ct.id) "
            "SELECT * FROM category_tree"
        )
        tables = extract_table_names(sql)
        self.assertIn("uc_categories", tables)
        self.assertIn("category_tree", tables)


class TestReservedWords(unittest.TestCase):

    def test_is_reserved_word(self):
        self.assertTrue(is_reserved_word("WHERE"))
        self.assertTrue(is_reserved_word("returning"))
        self.assertFalse(is_reserved_word("users"))

    def test_extractor_is_reusable(self):
        extractor = TableReferenceExtractor()
        self.assertEqual(extractor.extract("SELECT * FROM a"), ["a"])
        self.assertEqual(extractor.extract("SELECT * FROM b"), ["b"])


if __name__ == "__main__":
    unittest.main()
