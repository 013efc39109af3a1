"""
Graph Client

Wraps the Neo4j driver for the three operations retrieval needs:
vector similarity search by index name, case-insensitive substring search
by field, and traversal to a related entity's display field.
Also carries the maintenance calls used by the embedding backfill script.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .errors import StoreError

logger = logging.getLogger("intelligraph.common.graph_client")

# Labels, relationship types and property names cannot be Cypher parameters;
# they are interpolated, so only plain identifiers are accepted.
_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

EMBEDDING_PROPERTY = "embedding"


def _ident(name: str) -> str:
    if not _IDENT_RE.match(name or ""):
        raise ValueError(f"Invalid Cypher identifier: {name!r}")
    return name


def _contains(var: str, field: str, is_list: bool = False) -> str:
    """Cypher predicate: ``$text`` occurs in the property, case-insensitively."""
    prop = f"{var}.{_ident(field)}"
    if is_list:
        return f"ANY(item IN coalesce({prop}, []) WHERE toLower(toString(item)) CONTAINS toLower($text))"
    return f"toLower(coalesce({prop}, '')) CONTAINS toLower($text)"


def _to_plain(value: Any) -> Any:
    """Convert Neo4j temporal values to ISO strings."""
    if hasattr(value, "iso_format"):
        return value.iso_format()
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


def _clean_node(props: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Node properties without the stored embedding."""
    return {
        k: _to_plain(v)
        for k, v in (props or {}).items()
        if k != EMBEDDING_PROPERTY
    }


@dataclass(frozen=True)
class Relation:
    """A related entity reached from a matched node.

    ``incoming=True`` means ``(related)-[:TYPE]->(node)``.
    """
    rel_type: str
    label: str
    display_field: str = "name"
    incoming: bool = True

    def pattern(self, node_var: str) -> str:
        rel = f"[:{_ident(self.rel_type)}]"
        related = f"(r:{_ident(self.label)})"
        if self.incoming:
            return f"({node_var})<-{rel}-{related}"
        return f"({node_var})-{rel}->{related}"


class GraphClient:
    """
    Neo4j access for the retrieval pipeline.

    The driver is created lazily on first use and shared across requests
    (the driver is thread-safe; sessions are per call).
    """

    def __init__(
        self,
        uri: str = "bolt://localhost:7687",
        username: str = "neo4j",
        password: str = "",
        database: str = "",
        timeout: float = 10.0,
        driver=None,
    ):
        self._uri = uri
        self._username = username
        self._password = password
        self._database = database or None
        self._timeout = timeout
        self._driver = driver

    @classmethod
    def from_config(cls, config) -> "GraphClient":
        """Build a client from an IntelliGraphConfig"""
        return cls(
            uri=config.graph.uri,
            username=config.graph.username,
            password=config.graph.password,
            database=config.graph.database,
            timeout=config.retriever.store_timeout,
        )

    def has_config(self) -> bool:
        return bool(self._uri and self._username)

    def get_driver(self):
        """Get or create the Neo4j driver."""
        if self._driver is not None:
            return self._driver
        if not self.has_config():
            raise StoreError("Neo4j is not configured (missing uri or username)")
        from neo4j import GraphDatabase

        self._driver = GraphDatabase.driver(self._uri, auth=(self._username, self._password))
        return self._driver

    def close(self) -> None:
        if self._driver is not None:
            self._driver.close()
            self._driver = None

    def verify(self) -> bool:
        """Check connectivity without raising"""
        try:
            self.get_driver().verify_connectivity()
            return True
        except Exception as e:
            logger.warning("Neo4j connectivity check failed: %s", e)
            return False

    def _run(self, query: str, params: Optional[Dict[str, Any]], access_mode: str) -> List[Dict[str, Any]]:
        from neo4j import Query

        try:
            driver = self.get_driver()
            with driver.session(database=self._database, default_access_mode=access_mode) as session:
                result = session.run(Query(query, timeout=self._timeout), params or {})
                return [record.data() for record in result]
        except StoreError:
            raise
        except Exception as e:
            logger.error("Neo4j %s query failed: %s", access_mode.lower(), e)
            raise StoreError(f"Graph store query failed: {e}") from e

    def run_read(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a read-only query and return record dicts."""
        return self._run(query, params, "READ")

    def run_write(self, query: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Run a write query and return record dicts."""
        return self._run(query, params, "WRITE")

    # =========================================================================
    # Retrieval
    # =========================================================================

    def similarity_search(
        self,
        index_name: str,
        vector: Sequence[float],
        topk: int,
        min_score: float = 0.0,
        relation: Optional[Relation] = None,
    ) -> List[Dict[str, Any]]:
        """
        Query a vector index.

        Args:
            index_name: Neo4j vector index name
            vector: Query embedding
            topk: Number of candidates requested from the index
            min_score: Candidates below this score are dropped
            relation: Related entity whose display field is collected

        Returns:
            List of {"node": props, "score": float, "related": [names]},
            sorted by score descending
        """
        if relation:
            related_clause = (
                f"OPTIONAL MATCH {relation.pattern('n')}\n"
                f"WITH n, score, collect(r.{_ident(relation.display_field)}) AS related\n"
            )
        else:
            related_clause = "WITH n, score, [] AS related\n"

        query = (
            "CALL db.index.vector.queryNodes($index_name, $topk, $vector)\n"
            "YIELD node AS n, score\n"
            "WHERE score >= $min_score\n"
            f"{related_clause}"
            "RETURN properties(n) AS node, score, related\n"
            "ORDER BY score DESC"
        )
        rows = self.run_read(query, {
            "index_name": index_name,
            "topk": topk,
            "vector": list(vector),
            "min_score": min_score,
        })
        return [
            {
                "node": _clean_node(row.get("node")),
                "score": float(row.get("score") or 0.0),
                "related": [r for r in (row.get("related") or []) if r],
            }
            for row in rows
        ]

    def substring_search(
        self,
        label: str,
        fields: Sequence[str],
        text: str,
        limit: Optional[int] = None,
        relation: Optional[Relation] = None,
        list_fields: Sequence[str] = (),
        rank_by: Sequence[str] = (),
        newest_first: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """
        Case-insensitive substring match of ``text`` against node fields.

        Args:
            label: Node label to scan
            fields: String properties to match
            text: Needle (matched lower-cased)
            limit: Max rows, None for all
            relation: Related entity whose display field is collected
            list_fields: List-valued properties matched element-wise
            rank_by: Properties in priority order; rows whose first matching
                property comes earlier sort first
            newest_first: Timestamp property ordering rows within a rank

        Ordering and ``limit`` are applied in the store, so the limit keeps
        the best-ranked rows rather than an arbitrary subset.

        Returns:
            List of {"node": props, "related": [names]}
        """
        var = "n"
        conditions = [_contains(var, f, f in list_fields) for f in fields]
        conditions += [_contains(var, f, True) for f in list_fields if f not in fields]
        if not conditions:
            raise ValueError("substring_search needs at least one field")

        query = f"MATCH ({var}:{_ident(label)})\nWHERE " + "\n   OR ".join(conditions) + "\n"
        if relation:
            query += (
                f"OPTIONAL MATCH {relation.pattern(var)}\n"
                f"WITH {var}, collect(r.{_ident(relation.display_field)}) AS related\n"
            )
        else:
            query += f"WITH {var}, [] AS related\n"
        query += f"RETURN properties({var}) AS node, related"

        order = []
        if rank_by:
            whens = "\n".join(
                f"  WHEN {_contains(var, f, f in list_fields)} THEN {i}"
                for i, f in enumerate(rank_by, start=1)
            )
            query += f",\nCASE\n{whens}\n  ELSE {len(rank_by) + 1}\nEND AS rank"
            order.append("rank")
        if newest_first:
            query += f",\n{var}.{_ident(newest_first)} AS sortTime"
            order.append("sortTime DESC")
        if order:
            query += "\nORDER BY " + ", ".join(order)

        params: Dict[str, Any] = {"text": text}
        if limit is not None:
            query += "\nLIMIT $limit"
            params["limit"] = limit

        rows = self.run_read(query, params)
        return [
            {
                "node": _clean_node(row.get("node")),
                "related": [r for r in (row.get("related") or []) if r],
            }
            for row in rows
        ]

    # =========================================================================
    # Maintenance (embedding backfill)
    # =========================================================================

    def create_vector_index(self, index_name: str, label: str, dim: int, similarity: str = "cosine") -> None:
        """Create a vector index on ``label.embedding`` if it does not exist."""
        query = (
            f"CREATE VECTOR INDEX {_ident(index_name)} IF NOT EXISTS\n"
            f"FOR (n:{_ident(label)}) ON (n.{EMBEDDING_PROPERTY})\n"
            "OPTIONS {indexConfig: {`vector.dimensions`: $dim, `vector.similarity_function`: $similarity}}"
        )
        self.run_write(query, {"dim": dim, "similarity": similarity})

    def nodes_missing_embedding(
        self,
        label: str,
        id_field: str,
        text_field: str,
        limit: int = 10000,
    ) -> List[Dict[str, Any]]:
        """Nodes that have body text but no stored embedding."""
        query = (
            f"MATCH (n:{_ident(label)})\n"
            f"WHERE n.{EMBEDDING_PROPERTY} IS NULL AND n.{_ident(text_field)} IS NOT NULL\n"
            f"RETURN n.{_ident(id_field)} AS id, n.{_ident(text_field)} AS text\n"
            "LIMIT $limit"
        )
        return self.run_read(query, {"limit": limit})

    def set_embedding(self, label: str, id_field: str, node_id: Any, vector: Sequence[float]) -> bool:
        """Store an embedding on the node with the given id."""
        query = (
            f"MATCH (n:{_ident(label)} {{{_ident(id_field)}: $id}})\n"
            f"CALL db.create.setNodeVectorProperty(n, '{EMBEDDING_PROPERTY}', $vector)\n"
            "RETURN count(n) AS updated"
        )
        rows = self.run_write(query, {"id": node_id, "vector": list(vector)})
        return bool(rows and rows[0].get("updated"))
