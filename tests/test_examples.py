"""
Example catalog tests.
"""

from mapstyler.core.examples import EXAMPLES, get_example, get_examples
from mapstyler.core.format_registry import FormatRegistry


class TestExampleCatalog:

    def test_ids_are_unique(self):
        ids = [example["id"] for example in get_examples()]
        assert len(ids) == len(set(ids)) == 3

    def test_every_example_has_layers_and_data_url(self):
        for example in get_examples():
            assert example["dataUrl"]
            assert example["layers"]
            assert isinstance(example["style"], dict)

    def test_copies_are_independent(self):
        example = get_example("africa")
        example["layers"].clear()
        assert EXAMPLES[0]["layers"]

    def test_unknown_example(self):
        assert get_example("atlantis") is None

    def test_data_layers_dispatch_to_extent_handlers(self):
        registry = FormatRegistry.with_builtin_handlers()
        for example in get_examples():
            data_layer = example["layers"][0]
            handler = registry.dispatch(data_layer["source"])
            assert handler is not registry.default_handler, example["id"]
