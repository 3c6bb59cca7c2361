"""
Tests for linknest/stats.py
"""
from linknest.stats import collection_stats, tag_counts, top_tags


class TestStats:
    """Test collection statistics."""

    def test_tag_counts_every_occurrence(self, link_factory):
        links = [
            link_factory("a", "A", tags=["x", "x", "y"]),
            link_factory("b", "B", tags=["x"]),
        ]
        assert tag_counts(links) == {"x": 3, "y": 1}

    def test_top_tags_ties_by_name(self, link_factory):
        links = [link_factory(str(i), "T", tags=["b", "a", "c"]) for i in range(2)]
        links.append(link_factory("z", "T", tags=["c"]))
        assert top_tags(links, limit=2) == [("c", 3), ("a", 2)]

    def test_collection_stats(self, sample_snapshot):
        stats = collection_stats(sample_snapshot.links, sample_snapshot.folders)

        assert stats["total_links"] == 4
        assert stats["total_folders"] == 2
        assert stats["unfiled_links"] == 1
        assert stats["unique_tags"] == 6
        assert len(stats["top_tags"]) == 5
        assert stats["folders"] == [
            {"id": "f-dev", "name": "Development", "links": 2},
            {"id": "f-food", "name": "Recipes", "links": 1},
        ]

    def test_empty_collection(self):
        stats = collection_stats([], [])
        assert stats["total_links"] == 0
        assert stats["top_tags"] == []
        assert stats["folders"] == []
