"""
Tests for the in-memory engine.
"""

import pytest

from indaleko_fieldcrypt.db.memory import MemoryEngine, RelationDef, match_value


@pytest.fixture
def seeded(engine: MemoryEngine) -> MemoryEngine:
    engine.execute("User", "create", {
        "data": {
            "name": "Alec",
            "age": 40,
            "posts": {"create": [
                {"title": "006 - First report", "views": 3},
                {"title": "Janus", "views": 9, "categories": {"create": {"name": "Quotes"}}},
            ]},
        }
    })
    engine.execute("User", "create", {"data": {"name": "James", "age": 38}})
    engine.execute("User", "create", {"data": {"name": "Xenia", "age": None}})
    return engine


class TestMatchValue:
    """Tests for scalar filter evaluation."""

    def test_operators(self) -> None:
        assert match_value("a", "a")
        assert match_value("a", {"equals": "a"})
        assert match_value("a", {"not": "b"})
        assert not match_value("a", {"not": {"equals": "a"}})
        assert match_value(3, {"in": [1, 3]})
        assert match_value(3, {"notIn": [1, 2]})
        assert match_value(3, {"gt": 2, "lte": 3})
        assert not match_value(None, {"lt": 3})
        assert match_value("Janus", {"startsWith": "Ja", "endsWith": "us", "contains": "anu"})

    def test_unknown_operator(self) -> None:
        with pytest.raises(ValueError, match="Unsupported filter operator"):
            match_value("a", {"like": "a%"})


class TestMemoryEngine:
    """Tests for the MemoryEngine class."""

    def test_missing_inverse(self) -> None:
        with pytest.raises(ValueError, match="no matching inverse"):
            MemoryEngine({"User": {"posts": RelationDef("Post", "author", many=True)}})

    def test_unknown_action(self, engine: MemoryEngine) -> None:
        with pytest.raises(ValueError, match="Unsupported action"):
            engine.execute("User", "truncate", {})

    def test_create_assigns_ids(self, seeded: MemoryEngine) -> None:
        assert [row["id"] for row in seeded.raw_rows("User")] == [1, 2, 3]
        assert [row["id"] for row in seeded.raw_rows("Post")] == [1, 2]

    def test_explicit_and_duplicate_id(self, engine: MemoryEngine) -> None:
        engine.execute("Category", "create", {"data": {"id": 7, "name": "Spies"}})
        created = engine.execute("Category", "create", {"data": {"name": "Villains"}})

        assert created["id"] == 8
        with pytest.raises(ValueError, match="Duplicate id"):
            engine.execute("Category", "create", {"data": {"id": 7, "name": "Again"}})

    def test_natural_order(self, seeded: MemoryEngine) -> None:
        names = [user["name"] for user in seeded.execute("User", "find_many", {})]

        assert names == ["Alec", "James", "Xenia"]

    def test_order_by(self, seeded: MemoryEngine) -> None:
        by_name = seeded.execute("User", "find_many", {"orderBy": {"name": "desc"}})
        by_age = seeded.execute("User", "find_many", {"orderBy": [{"age": "asc"}]})

        assert [user["name"] for user in by_name] == ["Xenia", "James", "Alec"]
        assert [user["name"] for user in by_age] == ["Xenia", "James", "Alec"]

    def test_paging_and_cursor(self, seeded: MemoryEngine) -> None:
        assert [u["name"] for u in seeded.execute("User", "find_many", {"skip": 1, "take": 1})] == ["James"]
        assert [u["name"] for u in seeded.execute("User", "find_many", {"take": -1})] == ["Xenia"]
        assert [u["name"] for u in seeded.execute("User", "find_many", {"cursor": {"name": "James"}})] == ["James", "Xenia"]
        assert seeded.execute("User", "find_many", {"cursor": {"name": "Nobody"}}) == []

    def test_filters(self, seeded: MemoryEngine) -> None:
        where = {"OR": [{"name": "Alec"}, {"age": {"lt": 39}}], "NOT": {"name": "Xenia"}}

        assert [u["name"] for u in seeded.execute("User", "find_many", {"where": where})] == ["Alec", "James"]
        assert seeded.execute("User", "count", {"where": {"AND": [{"age": {"gte": 38}}, {"age": {"lte": 39}}]}}) == 1

    def test_relation_filters(self, seeded: MemoryEngine) -> None:
        def names(where):
            return [u["name"] for u in seeded.execute("User", "find_many", {"where": where})]

        assert names({"posts": {"some": {"title": "Janus"}}}) == ["Alec"]
        assert names({"posts": {"none": {}}}) == ["James", "Xenia"]
        assert names({"posts": {"every": {"views": {"gt": 5}}}}) == ["James", "Xenia"]

        posts = seeded.execute("Post", "find_many", {"where": {"author": {"name": "Alec"}}})
        assert len(posts) == 2
        assert seeded.execute("Post", "count", {"where": {"author": {"isNot": None}}}) == 2
        assert seeded.execute("Post", "count", {"where": {"author": {"is": {"name": "James"}}}}) == 0

    def test_find_unique_and_first(self, seeded: MemoryEngine) -> None:
        assert seeded.execute("User", "find_unique", {"where": {"id": 2}})["name"] == "James"
        assert seeded.execute("User", "find_unique", {"where": {"id": 99}}) is None
        assert seeded.execute("User", "find_first", {"where": {"age": {"gt": 30}}, "orderBy": {"age": "asc"}})["name"] == "James"

    def test_include_and_select(self, seeded: MemoryEngine) -> None:
        user = seeded.execute("User", "find_unique", {
            "where": {"id": 1},
            "include": {"posts": {"include": {"categories": True}, "orderBy": {"views": "desc"}}},
        })

        assert [post["title"] for post in user["posts"]] == ["Janus", "006 - First report"]
        assert user["posts"][0]["categories"] == [{"id": 1, "name": "Quotes"}]

        post = seeded.execute("Post", "find_first", {"select": {"title": True, "author": {"select": {"name": True}}}})
        assert post == {"title": "006 - First report", "author": {"name": "Alec"}}

    def test_results_are_copies(self, seeded: MemoryEngine) -> None:
        seeded.execute("User", "find_unique", {"where": {"id": 1}})["name"] = "changed"

        assert seeded.raw_rows("User")[0]["name"] == "Alec"

    def test_update(self, seeded: MemoryEngine) -> None:
        updated = seeded.execute("User", "update", {"where": {"name": "James"}, "data": {"age": {"increment": 1}, "name": {"set": "Bond"}}})

        assert updated["age"] == 39
        assert updated["name"] == "Bond"

    def test_update_missing(self, seeded: MemoryEngine) -> None:
        with pytest.raises(LookupError):
            seeded.execute("User", "update", {"where": {"name": "Nobody"}, "data": {"age": 1}})
        with pytest.raises(LookupError):
            seeded.execute("User", "delete", {"where": {"name": "Nobody"}})

    def test_bulk_operations(self, seeded: MemoryEngine) -> None:
        assert seeded.execute("Category", "create_many", {"data": [{"name": "A"}, {"name": "B"}]}) == {"count": 2}
        assert seeded.execute("User", "update_many", {"where": {"age": {"gt": 30}}, "data": {"age": 0}}) == {"count": 2}
        assert seeded.execute("User", "delete_many", {"where": {"age": 0}}) == {"count": 2}
        assert seeded.execute("User", "count", {}) == 1

    def test_upsert(self, seeded: MemoryEngine) -> None:
        created = seeded.execute("User", "upsert", {"where": {"name": "M"}, "create": {"name": "M"}, "update": {"age": 1}})
        updated = seeded.execute("User", "upsert", {"where": {"name": "M"}, "create": {"name": "M"}, "update": {"age": 1}})

        assert "age" not in created
        assert updated["age"] == 1
        assert seeded.execute("User", "count", {"where": {"name": "M"}}) == 1

    def test_delete_unlinks(self, seeded: MemoryEngine) -> None:
        seeded.execute("User", "delete", {"where": {"id": 1}})

        post = seeded.execute("Post", "find_first", {"include": {"author": True}})
        assert post["author"] is None

    def test_nested_connect_and_disconnect(self, seeded: MemoryEngine) -> None:
        post = seeded.execute("Post", "create", {
            "data": {"title": "Orders", "author": {"connect": {"name": "James"}}},
            "include": {"author": True},
        })
        assert post["author"]["name"] == "James"

        # A to-one connect replaces the previous link
        seeded.execute("Post", "update", {"where": {"id": post["id"]}, "data": {"author": {"connect": {"name": "Xenia"}}}})
        james = seeded.execute("User", "find_unique", {"where": {"name": "James"}, "include": {"posts": True}})
        assert james["posts"] == []

        seeded.execute("User", "update", {"where": {"name": "Xenia"}, "data": {"posts": {"disconnect": {"id": post["id"]}}}})
        assert seeded.execute("Post", "count", {"where": {"author": None}}) == 1

    def test_nested_connect_missing(self, seeded: MemoryEngine) -> None:
        with pytest.raises(LookupError):
            seeded.execute("Post", "create", {"data": {"title": "x", "author": {"connect": {"name": "Nobody"}}}})

    def test_nested_set_update_and_delete(self, seeded: MemoryEngine) -> None:
        seeded.execute("User", "update", {
            "where": {"id": 1},
            "data": {"posts": {"updateMany": {"where": {"views": {"lt": 5}}, "data": {"views": {"multiply": 10}}}}},
        })
        assert seeded.execute("Post", "find_unique", {"where": {"id": 1}})["views"] == 30

        seeded.execute("User", "update", {"where": {"id": 1}, "data": {"posts": {"set": [{"id": 2}]}}})
        alec = seeded.execute("User", "find_unique", {"where": {"id": 1}, "include": {"posts": True}})
        assert [post["id"] for post in alec["posts"]] == [2]

        seeded.execute("User", "update", {"where": {"id": 1}, "data": {"posts": {"delete": {"id": 2}}}})
        assert seeded.execute("Post", "count", {}) == 1

    def test_connect_or_create(self, seeded: MemoryEngine) -> None:
        for _ in range(2):
            seeded.execute("Post", "create", {
                "data": {"title": "t", "categories": {"connectOrCreate": {"where": {"name": "Spies"}, "create": {"name": "Spies"}}}},
            })

        assert seeded.execute("Category", "count", {"where": {"name": "Spies"}}) == 1
        assert seeded.execute("Category", "count", {"where": {"posts": {"some": {"title": "t"}}}}) == 1

    def test_aggregate_and_group_by(self, seeded: MemoryEngine) -> None:
        assert seeded.execute("User", "aggregate", {"_count": True, "_min": {"age": True}, "_max": {"age": True}}) == {
            "_count": 3,
            "_min": {"age": 38},
            "_max": {"age": 40},
        }

        groups = seeded.execute("Post", "group_by", {"by": ["title"], "_count": True, "having": {"_count": {"gte": 1}}})
        assert groups == [{"title": "006 - First report", "_count": 1}, {"title": "Janus", "_count": 1}]

        with pytest.raises(ValueError, match="requires 'by'"):
            seeded.execute("Post", "group_by", {})

    def test_transaction_commit(self, engine: MemoryEngine) -> None:
        result = engine.transaction(lambda tx: tx.execute("Category", "create", {"data": {"name": "Spies"}}))

        assert result["name"] == "Spies"
        assert engine.execute("Category", "count", {}) == 1

    def test_transaction_rollback(self, seeded: MemoryEngine) -> None:
        def work(tx: MemoryEngine) -> None:
            tx.execute("User", "delete_many", {})
            raise RuntimeError("abort")

        with pytest.raises(RuntimeError):
            seeded.transaction(work)

        assert seeded.execute("User", "count", {}) == 3
        assert len(seeded.execute("User", "find_unique", {"where": {"id": 1}, "include": {"posts": True}})["posts"]) == 2
        # Id sequence is restored as well
        assert seeded.execute("User", "create", {"data": {"name": "M"}})["id"] == 4
