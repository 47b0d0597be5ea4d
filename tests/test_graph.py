"""Abstraction graph, relationship builder and sequencer tests."""

import pytest
from conftest import make_abstraction, make_graph, sample_abstractions
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from tutorgen.graph import (
    AbstractionGraph,
    ChapterSequencer,
    Relationship,
    RelationshipBuilder,
    SourceLocation,
    label_family,
    normalize_name,
    slugify,
)
from tutorgen.parsing import ParserRegistry
from tutorgen.repo.models import SourceFile

# =============================================================================
# Models
# =============================================================================


def test_slugify_splits_camel_case():
    """Slugs are lowercase and hyphenated."""
    assert slugify("FileFilter") == "file-filter"
    assert slugify("Problem & Motivation") == "problem-motivation"
    assert slugify("!!!") == "abstraction"


def test_normalize_name_ignores_case_separators_and_plurals():
    """Near-identical names share a normalized key."""
    assert normalize_name("File Filters") == normalize_name("file_filter") == "filefilter"
    assert normalize_name("Class") == "class"


def test_source_location_rejects_inverted_range():
    """A location must be a valid 1-indexed range."""
    with pytest.raises(ValueError):
        SourceLocation("a.py", 5, 2)
    assert str(SourceLocation("a.py", 3, 3)) == "a.py:3"
    assert str(SourceLocation("a.py", 3, 7)) == "a.py:3-7"


def test_abstraction_requires_known_category_and_location():
    """Categories come from the fixed set; locations are mandatory."""
    with pytest.raises(ValueError, match="Invalid category"):
        make_abstraction("Scanner", category="Magic")
    with pytest.raises(ValueError, match="at least one source file"):
        make_abstraction("Scanner", locations=())


def test_relationship_rejects_self_loops():
    """An abstraction cannot relate to itself."""
    with pytest.raises(ValueError, match="Self-loop"):
        Relationship(1, 1, "uses")


def test_graph_rejects_dangling_endpoints_and_duplicate_ids():
    """Edges must stay inside the arena and ids must be unique."""
    with pytest.raises(ValueError, match="missing"):
        make_graph(["A", "B"], [(0, 2)])
    with pytest.raises(ValueError, match="Duplicate"):
        AbstractionGraph((make_abstraction("A"), make_abstraction("A")))


def test_graph_neighbourhood_queries():
    """Successor and predecessor lookups return sorted indices."""
    graph = make_graph(["A", "B", "C"], [(0, 1), (0, 2), (2, 1)])

    assert graph.successors(0) == [1, 2]
    assert graph.predecessors(1) == [0, 2]
    assert graph.neighbors(2) == [0, 1]
    assert graph.index_of("c") == 2
    assert graph.get("b").name == "B"


def test_to_networkx_collapses_parallel_edges():
    """Parallel relationships become one edge with every label."""
    graph = AbstractionGraph(
        (make_abstraction("A"), make_abstraction("B")),
        (Relationship(0, 1, "imports"), Relationship(0, 1, "instantiates", weight=2)),
    )

    G = graph.to_networkx()

    assert G.edges[0, 1]["labels"] == ["imports", "instantiates"]
    assert G.edges[0, 1]["weight"] == 3
    assert graph.is_acyclic()


# =============================================================================
# Relationship Builder
# =============================================================================


def edges(graph):
    return {(r.source, r.target, r.label) for r in graph.relationships}


def test_builder_labels_code_evidence(sample_files):
    """Imports, instantiations and configuration reads become labelled edges."""
    graph = RelationshipBuilder(sample_files).build(sample_abstractions(sample_files))

    assert edges(graph) == {
        (0, 1, "imports"),
        (0, 1, "instantiates"),
        (1, 2, "imports"),
        (1, 2, "reads configuration from"),
    }
    assert all(rel.dependency for rel in graph.relationships)
    assert {rel.precedence for rel in graph.relationships} == {(1, 0), (2, 1)}


def test_builder_is_deterministic(sample_files):
    """Equal inputs produce equal graphs."""
    abstractions = sample_abstractions(sample_files)

    first = RelationshipBuilder(sample_files).build(abstractions)
    second = RelationshipBuilder(sample_files).build(abstractions)

    assert first == second


def test_builder_reads_verb_phrases_from_interactions():
    """Interaction sentences ending in another abstraction's name become edges."""
    planner = make_abstraction(
        "Planner", interactions=("It reads configuration from Settings.",)
    )
    settings_abstraction = make_abstraction("Settings", category="Configuration")

    graph = RelationshipBuilder([]).build([planner, settings_abstraction])

    (rel,) = graph.relationships
    assert (rel.source, rel.target, rel.label) == (0, 1, "reads configuration from")


def test_builder_keeps_most_specific_label_per_verb():
    """Labels with the same head verb merge into the longest phrase."""
    alpha = make_abstraction(
        "Alpha", interactions=("Reads from Beta.", "Reads configuration from Beta.")
    )

    graph = RelationshipBuilder([]).build([alpha, make_abstraction("Beta")])

    (rel,) = graph.relationships
    assert rel.label == "reads configuration from"
    assert rel.weight == 4


def test_builder_relabels_contradictory_mirrored_edges():
    """A configures B plus B configures A keeps one direction."""
    alpha = make_abstraction("Alpha", interactions=("Configures Beta.",))
    beta = make_abstraction("Beta", interactions=("Configures Alpha.",))

    graph = RelationshipBuilder([]).build([alpha, beta])

    assert edges(graph) == {(0, 1, "configures"), (1, 0, "collaborates with")}
    assert {rel.precedence for rel in graph.relationships} == {(1, 0)}


BASE_PY = '''\
"""Storage."""


class Store:
    """Holds values by key."""

    def put(self, key, value):
        pass
'''

FAST_PY = '''\
"""Fast storage."""

import logging

from app.base import Store


class FastStore(Store):
    """Keeps a memory layer in front of the store."""

    def warm(self):
        logging.getLogger("Store").info("warming Store")
'''


def store_abstractions():
    """FastStore declared before the Store it builds on."""
    fast = make_abstraction(
        "Fast Store",
        symbols=("FastStore",),
        locations=(SourceLocation("app/fast.py", 1, 13),),
    )
    store = make_abstraction(
        "Store", symbols=("Store",), locations=(SourceLocation("app/base.py", 1, 9),)
    )
    return [fast, store]


def store_files():
    return [
        SourceFile(path="app/base.py", language="python", content=BASE_PY, size=len(BASE_PY)),
        SourceFile(path="app/fast.py", language="python", content=FAST_PY, size=len(FAST_PY)),
    ]


def test_builder_resolves_parsed_imports_and_inheritance():
    """Parsed imports and base classes become edges; mentions in strings do not."""
    files = store_files()
    parsed = ParserRegistry().parse_all(files)

    graph = RelationshipBuilder(files, parsed).build(store_abstractions())

    assert edges(graph) == {(0, 1, "imports"), (0, 1, "extends")}


def test_label_family_uses_head_verb():
    """Labels group by their first word, singularised."""
    assert label_family("reads configuration from") == label_family("read") == "read"
    assert label_family("address") == "address"


# =============================================================================
# Sequencer
# =============================================================================


def test_chain_is_ordered_source_first():
    """A dependency chain comes out in chain order with no warnings."""
    names = ["Scanner", "Extractor", "Builder", "Sequencer", "Generator"]
    graph = make_graph(names, [(0, 1), (1, 2), (2, 3), (3, 4)])

    result = ChapterSequencer().sequence(graph)

    assert result.order == (0, 1, 2, 3, 4)
    assert result.warnings == ()
    assert result.broken_edges == ()


def test_dependencies_are_explained_first(sample_graph):
    """A module comes before the modules that import it."""
    result = ChapterSequencer().sequence(sample_graph)

    assert [sample_graph.abstractions[i].name for i in result.order] == [
        "Settings",
        "Scanner",
        "Report",
    ]
    assert result.warnings == ()


def test_base_class_precedes_subclass():
    """Inheritance orders the base first even when declared last."""
    graph = RelationshipBuilder(store_files()).build(store_abstractions())

    assert ChapterSequencer().sequence(graph).order == (1, 0)


def test_dependency_flag_reverses_precedence():
    """A dependency edge puts its target first; a plain edge its source."""
    abstractions = (make_abstraction("A"), make_abstraction("B"))

    plain = AbstractionGraph(abstractions, (Relationship(1, 0, "precedes"),))
    uses = AbstractionGraph(abstractions, (Relationship(0, 1, "uses", dependency=True),))

    assert ChapterSequencer().sequence(plain).order == (1, 0)
    assert ChapterSequencer().sequence(uses).order == (1, 0)


def test_reverse_chain_follows_edges_not_declaration():
    """Edges win over declaration order."""
    graph = make_graph(["A", "B", "C"], [(2, 1), (1, 0)])

    assert ChapterSequencer().sequence(graph).order == (2, 1, 0)


def test_cycle_is_broken_with_one_warning():
    """A three-cycle yields a total order and exactly one warning."""
    graph = make_graph(["A", "B", "C"], [(0, 1), (1, 2), (2, 0)])

    result = ChapterSequencer().sequence(graph)

    assert sorted(result.order) == [0, 1, 2]
    assert len(result.warnings) == 1
    assert result.broken_edges == ((0, 1),)
    assert result.order == (1, 2, 0)
    assert "A -> B" in str(result.warnings[0])


def test_alphabetical_tie_break():
    """Independent abstractions can be ordered by name."""
    graph = make_graph(["Zeta", "Alpha", "Mid"], [])

    assert ChapterSequencer().sequence(graph).order == (0, 1, 2)
    assert ChapterSequencer("alphabetical").sequence(graph).order == (1, 2, 0)


def test_unknown_tie_break_is_rejected():
    """Only known tie-break rules are accepted."""
    with pytest.raises(ValueError, match="tie_break"):
        ChapterSequencer("random")


@st.composite
def random_graphs(draw):
    size = draw(st.integers(min_value=1, max_value=7))
    pairs = [(i, j) for i in range(size) for j in range(size) if i != j]
    chosen = draw(st.lists(st.sampled_from(pairs), unique=True) if pairs else st.just([]))
    return make_graph([f"N{i}" for i in range(size)], chosen)


@given(random_graphs())
@settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
def test_sequence_is_a_deterministic_total_order(graph):
    """Every abstraction appears exactly once and reruns agree."""
    first = ChapterSequencer().sequence(graph)
    second = ChapterSequencer().sequence(graph)

    assert sorted(first.order) == list(range(len(graph)))
    assert first == second
    position = {node: i for i, node in enumerate(first.order)}
    broken = set(first.broken_edges)
    for rel in graph.relationships:
        before, after = rel.precedence
        if (before, after) not in broken:
            assert position[before] < position[after]
