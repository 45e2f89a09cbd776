#!/usr/bin/env python3
"""
Unit tests for collaborator loading.
"""

import pytest

from geogrid.exceptions import CollaboratorLoadError
from geogrid.models.ranking_model import RankedResults
from geogrid.services.collaborators import RankedResultsExtractor, load_collaborator


class StaticExtractor:
    async def extract_ranked_results(self, content, business_name):
        return RankedResults(reason="static")


def build_extractor():
    return StaticExtractor()


SHARED_EXTRACTOR = StaticExtractor()


@pytest.mark.unit
class TestLoadCollaborator:
    """Import path resolution."""

    def test_class_is_instantiated(self):
        instance = load_collaborator(f"{__name__}:StaticExtractor", RankedResultsExtractor)
        assert isinstance(instance, StaticExtractor)

    def test_factory_is_called(self):
        instance = load_collaborator(f"{__name__}.build_extractor", RankedResultsExtractor)
        assert isinstance(instance, StaticExtractor)

    def test_instance_is_used_as_is(self):
        instance = load_collaborator(f"{__name__}:SHARED_EXTRACTOR", RankedResultsExtractor)
        assert instance is SHARED_EXTRACTOR

    @pytest.mark.parametrize(
        "path",
        [
            None,
            "",
            "no_dots_here",
            "geogrid_missing_module:Thing",
            f"{__name__}:Missing",
            f"{__name__}:build_extractor.nested",
        ],
    )
    def test_unresolvable_paths(self, path):
        with pytest.raises(CollaboratorLoadError):
            load_collaborator(path, RankedResultsExtractor)

    def test_wrong_protocol(self):
        with pytest.raises(CollaboratorLoadError):
            load_collaborator("collections:OrderedDict", RankedResultsExtractor)
