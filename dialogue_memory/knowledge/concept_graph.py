"""In-memory concept graph for relatedness between utterances.

Nodes are domain concepts (model inputs, market factors, algorithms, outputs)
reachable from plain words through a synonym index. Edges carry a display
direction, but traversal always treats them as undirected: the neighbor index
is filled on both endpoints when an edge is added.
"""

from __future__ import annotations

import logging
import re
from collections import deque

from dialogue_memory.config import ENGINE_CONFIG
from dialogue_memory.errors import UnknownConceptError
from dialogue_memory.models import ConceptEdge, ConceptNode, GraphPath, GraphTopics

logger = logging.getLogger(__name__)

_PUNCT = re.compile(r"[^\w\s]")


def _words(text: str | None) -> list[str]:
    if not text:
        return []
    return _PUNCT.sub(" ", text.lower()).split()


def normalize_phrase(text: str) -> str:
    """Lowercase, turn punctuation into spaces and collapse whitespace."""
    return " ".join(_words(text))


def tokenize(text: str | None) -> list[str]:
    """Lowercase, strip punctuation, keep words longer than three characters."""
    return [w for w in _words(text) if len(w) > 3]


class ConceptGraph:
    """Keyed node/edge store with synonym and neighbor indices."""

    def __init__(self) -> None:
        self._nodes: dict[str, ConceptNode] = {}
        self._edges: list[ConceptEdge] = []
        self._synonyms: dict[str, set[str]] = {}
        self._neighbors: dict[str, set[str]] = {}
        # Word count of the longest synonym phrase
        self._max_phrase = 1

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self._nodes

    # ── Construction ──

    def add_node(self, node: ConceptNode) -> None:
        self._nodes[node.id] = node
        self._neighbors.setdefault(node.id, set())
        for synonym in node.synonyms:
            phrase = normalize_phrase(synonym)
            if not phrase:
                continue
            self._synonyms.setdefault(phrase, set()).add(node.id)
            self._max_phrase = max(self._max_phrase, len(phrase.split()))

    def add_edge(self, edge: ConceptEdge) -> None:
        for endpoint in (edge.source_id, edge.target_id):
            if endpoint not in self._nodes:
                raise UnknownConceptError(endpoint)
        self._edges.append(edge)
        self._neighbors[edge.source_id].add(edge.target_id)
        self._neighbors[edge.target_id].add(edge.source_id)

    @classmethod
    def from_parts(cls, nodes: list[ConceptNode], edges: list[ConceptEdge]) -> ConceptGraph:
        graph = cls()
        for node in nodes:
            graph.add_node(node)
        for edge in edges:
            graph.add_edge(edge)
        return graph

    # ── Lookup ──

    def get_node(self, node_id: str) -> ConceptNode | None:
        return self._nodes.get(node_id)

    def nodes(self) -> list[ConceptNode]:
        return list(self._nodes.values())

    def edges(self) -> list[ConceptEdge]:
        return list(self._edges)

    def neighbors(self, node_id: str) -> set[str]:
        return set(self._neighbors.get(node_id, ()))

    def find_nodes_by_synonym(self, word: str) -> list[ConceptNode]:
        ids = self._synonyms.get(normalize_phrase(word), set())
        return [self._nodes[i] for i in sorted(ids)]

    # ── Traversal ──

    def find_shortest_path(
        self, source_id: str, target_id: str, max_depth: int | None = None,
    ) -> list[str] | None:
        """Breadth-first search over the undirected neighbor index.

        Paths are not extended once they hold ``max_depth`` nodes, so the
        longest path returned has ``max_depth`` nodes. Returns None when the
        target is unreachable within that bound.
        """
        if max_depth is None:
            max_depth = ENGINE_CONFIG["graph_max_depth"]
        if source_id not in self._nodes:
            return None

        queue: deque[list[str]] = deque([[source_id]])
        visited = {source_id}
        while queue:
            path = queue.popleft()
            current = path[-1]
            if current == target_id:
                return path
            if len(path) >= max_depth:
                continue
            for neighbor in sorted(self._neighbors.get(current, ())):
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(path + [neighbor])
        return None

    def _candidate_phrases(self, text: str | None) -> list[str]:
        """Single words longer than three characters plus every multi-word run
        up to the longest synonym, in text order."""
        words = _words(text)
        phrases = []
        for i, word in enumerate(words):
            if len(word) > 3:
                phrases.append(word)
            for n in range(2, self._max_phrase + 1):
                if i + n > len(words):
                    break
                phrases.append(" ".join(words[i:i + n]))
        return phrases

    def extract_topics_with_graph(self, text: str | None) -> GraphTopics:
        """Map words and phrases of ``text`` onto concept nodes, their neighbors and connecting paths."""
        primary: list[ConceptNode] = []
        seen: set[str] = set()
        for phrase in self._candidate_phrases(text):
            for node in self.find_nodes_by_synonym(phrase):
                if node.id not in seen:
                    seen.add(node.id)
                    primary.append(node)

        neighbor_ids: set[str] = set()
        for node in primary:
            neighbor_ids |= self._neighbors.get(node.id, set())
        neighbor_ids -= seen
        neighbors = [self._nodes[i] for i in sorted(neighbor_ids)]

        paths = []
        for i, source in enumerate(primary):
            for target in primary[i + 1:]:
                path = self.find_shortest_path(source.id, target.id)
                if path:
                    paths.append(GraphPath(source=source, target=target, path=path))

        return GraphTopics(primary=primary, neighbors=neighbors, paths=paths)
