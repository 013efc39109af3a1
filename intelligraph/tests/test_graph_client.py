"""Tests for GraphClient query building and row mapping (mocked driver)."""

import pytest
from unittest.mock import MagicMock

from intelligraph.common.errors import StoreError
from intelligraph.common.graph_client import GraphClient, Relation, _ident


class FakeDate:
    """Stands in for neo4j.time.DateTime"""

    def __init__(self, iso):
        self._iso = iso

    def iso_format(self):
        return self._iso


def _record(data):
    record = MagicMock()
    record.data.return_value = data
    return record


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def client(session):
    driver = MagicMock()
    driver.session.return_value.__enter__.return_value = session
    return GraphClient(database="intelligraph", timeout=4.0, driver=driver)


def _last_query(session):
    query, params = session.run.call_args.args
    return query.text, params


class TestIdentifiers:
    def test_valid(self):
        assert _ident("Project") == "Project"
        assert _ident("call_embeddings") == "call_embeddings"

    @pytest.mark.parametrize("name", ["", "1abc", "Project) DETACH DELETE n //", "a-b", None])
    def test_invalid(self, name):
        with pytest.raises(ValueError):
            _ident(name)

    def test_relation_pattern(self):
        incoming = Relation(rel_type="IS_AUTHOR_OF", label="Academic")
        assert incoming.pattern("n") == "(n)<-[:IS_AUTHOR_OF]-(r:Academic)"
        outgoing = Relation(rel_type="WORKS_AT", label="Institution", incoming=False)
        assert outgoing.pattern("n") == "(n)-[:WORKS_AT]->(r:Institution)"


class TestRun:
    def test_session_uses_database_and_access_mode(self, client, session):
        session.run.return_value = [_record({"x": 1})]
        assert client.run_read("RETURN 1 AS x") == [{"x": 1}]

        kwargs = client._driver.session.call_args.kwargs
        assert kwargs == {"database": "intelligraph", "default_access_mode": "READ"}
        query = session.run.call_args.args[0]
        assert query.timeout == 4.0

    def test_driver_error_wrapped(self, client, session):
        session.run.side_effect = RuntimeError("connection reset")
        with pytest.raises(StoreError, match="connection reset"):
            client.run_read("RETURN 1")

    def test_missing_config_raises_store_error(self):
        with pytest.raises(StoreError, match="not configured"):
            GraphClient(uri="", username="").get_driver()

    def test_verify_does_not_raise(self, client):
        client._driver.verify_connectivity.side_effect = OSError("refused")
        assert client.verify() is False

    def test_close(self, client):
        driver = client._driver
        client.close()
        driver.close.assert_called_once()
        assert client._driver is None


class TestSimilaritySearch:
    def test_rows_mapped_and_embedding_dropped(self, client, session):
        session.run.return_value = [
            _record({
                "node": {"title": "Solar Grid", "embedding": [0.1], "createdAt": FakeDate("2024-05-01T00:00:00Z")},
                "score": 0.91,
                "related": ["Dr. Ayse", None],
            }),
        ]
        rows = client.similarity_search(
            "project_embeddings", [0.1, 0.2], 5,
            min_score=0.7,
            relation=Relation(rel_type="IS_AUTHOR_OF", label="Academic"),
        )

        assert rows == [{
            "node": {"title": "Solar Grid", "createdAt": "2024-05-01T00:00:00Z"},
            "score": 0.91,
            "related": ["Dr. Ayse"],
        }]
        text, params = _last_query(session)
        assert "db.index.vector.queryNodes" in text
        assert "OPTIONAL MATCH (n)<-[:IS_AUTHOR_OF]-(r:Academic)" in text
        assert params == {"index_name": "project_embeddings", "topk": 5, "vector": [0.1, 0.2], "min_score": 0.7}

    def test_without_relation(self, client, session):
        session.run.return_value = [_record({"node": {"title": "T"}, "score": 0.8, "related": []})]
        rows = client.similarity_search("call_embeddings", [1.0], 3)
        assert rows[0]["related"] == []
        assert "OPTIONAL MATCH" not in _last_query(session)[0]


class TestSubstringSearch:
    def test_query_shape(self, client, session):
        session.run.return_value = []
        client.substring_search(
            "Project", ("title", "summary"), "Solar",
            limit=50,
            relation=Relation(rel_type="IS_AUTHOR_OF", label="Academic"),
            list_fields=("keywords",),
        )

        text, params = _last_query(session)
        assert text.startswith("MATCH (n:Project)")
        assert "toLower(coalesce(n.title, '')) CONTAINS toLower($text)" in text
        assert "toLower(coalesce(n.summary, '')) CONTAINS toLower($text)" in text
        assert "ANY(item IN coalesce(n.keywords, [])" in text
        assert "LIMIT $limit" in text
        assert params == {"text": "Solar", "limit": 50}

    def test_ranked_query_orders_before_limit(self, client, session):
        session.run.return_value = []
        client.substring_search(
            "Project", ("title", "summary"), "solar",
            limit=20,
            list_fields=("keywords",),
            rank_by=("title", "keywords", "summary"),
            newest_first="createdAt",
        )

        text, params = _last_query(session)
        assert "WHEN toLower(coalesce(n.title, '')) CONTAINS toLower($text) THEN 1" in text
        assert "WHEN ANY(item IN coalesce(n.keywords, [])" in text
        assert "WHEN toLower(coalesce(n.summary, '')) CONTAINS toLower($text) THEN 3" in text
        assert "ELSE 4" in text
        assert "n.createdAt AS sortTime" in text
        assert text.index("ORDER BY rank, sortTime DESC") < text.index("LIMIT $limit")
        assert params == {"text": "solar", "limit": 20}

    def test_unranked_query_has_no_order(self, client, session):
        session.run.return_value = []
        client.substring_search("Academic", ("name",), "ayse", limit=5)
        assert "ORDER BY" not in _last_query(session)[0]

    def test_unsafe_rank_field_rejected(self, client, session):
        with pytest.raises(ValueError):
            client.substring_search("Project", ("title",), "x", newest_first="createdAt DESC //")
        session.run.assert_not_called()

    def test_no_limit(self, client, session):
        session.run.return_value = [_record({"node": {"name": "Ayse", "embedding": None}, "related": []})]
        rows = client.substring_search("Academic", ("name", "bio"), "ayse")

        assert rows == [{"node": {"name": "Ayse"}, "related": []}]
        text, params = _last_query(session)
        assert "LIMIT" not in text
        assert params == {"text": "ayse"}

    def test_no_fields_rejected(self, client):
        with pytest.raises(ValueError):
            client.substring_search("Academic", (), "x")

    def test_unsafe_label_rejected_before_query(self, client, session):
        with pytest.raises(ValueError):
            client.substring_search("Academic`) DETACH DELETE n", ("name",), "x")
        session.run.assert_not_called()


class TestMaintenance:
    def test_create_vector_index(self, client, session):
        session.run.return_value = []
        client.create_vector_index("project_embeddings", "Project", 768)

        text, params = _last_query(session)
        assert "CREATE VECTOR INDEX project_embeddings IF NOT EXISTS" in text
        assert "FOR (n:Project) ON (n.embedding)" in text
        assert params == {"dim": 768, "similarity": "cosine"}
        assert client._driver.session.call_args.kwargs["default_access_mode"] == "WRITE"

    def test_nodes_missing_embedding(self, client, session):
        session.run.return_value = [_record({"id": "p1", "text": "summary"})]
        assert client.nodes_missing_embedding("Project", "projectId", "summary", limit=10) == [
            {"id": "p1", "text": "summary"}
        ]
        text, params = _last_query(session)
        assert "n.embedding IS NULL" in text
        assert params == {"limit": 10}

    def test_set_embedding(self, client, session):
        session.run.return_value = [_record({"updated": 1})]
        assert client.set_embedding("Call", "callId", "c1", [0.1, 0.2]) is True

        text, params = _last_query(session)
        assert "MATCH (n:Call {callId: $id})" in text
        assert "db.create.setNodeVectorProperty" in text
        assert params == {"id": "c1", "vector": [0.1, 0.2]}

    def test_set_embedding_missing_node(self, client, session):
        session.run.return_value = [_record({"updated": 0})]
        assert client.set_embedding("Call", "callId", "missing", [0.1]) is False
