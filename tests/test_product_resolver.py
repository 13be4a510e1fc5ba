import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import patch

from ordergate.errors import NotFoundError
from ordergate.products import ProductCatalog, ProductResolver


def _write_catalog(path: Path, packages: dict) -> None:
    path.write_text(json.dumps({"packages": packages}), encoding="utf-8")


class ProductCatalogTest(unittest.TestCase):
    def test_missing_file_is_empty_catalog(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            catalog = ProductCatalog(Path(tmp_dir) / "products.json")

            self.assertEqual(catalog.list_products(), {})
            self.assertIsNone(catalog.get("VIP"))

    def test_add_remove_and_delete_persist(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            catalog = ProductCatalog(path)

            catalog.add_command("VIP", "lp user %player% parent set vip")
            catalog.add_command("VIP", "say welcome %player%")
            removed = catalog.remove_command("VIP", 1)

            self.assertEqual(removed, "lp user %player% parent set vip")
            reloaded = ProductCatalog(path)
            self.assertEqual(reloaded.get("VIP"), ["say welcome %player%"])

            reloaded.delete_product("VIP")
            self.assertIsNone(ProductCatalog(path).get("VIP"))

    def test_remove_out_of_range_raises(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            catalog = ProductCatalog(Path(tmp_dir) / "products.json")
            catalog.add_command("VIP", "say hi")

            with self.assertRaises(NotFoundError):
                catalog.remove_command("VIP", 2)
            with self.assertRaises(NotFoundError):
                catalog.remove_command("Unknown", 1)
            with self.assertRaises(NotFoundError):
                catalog.delete_product("Unknown")

    def test_add_rejects_empty_command(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            catalog = ProductCatalog(Path(tmp_dir) / "products.json")

            with self.assertRaises(ValueError):
                catalog.add_command("VIP", "   ")

    def test_corrupt_catalog_is_quarantined(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            path.write_text("{not json", encoding="utf-8")

            catalog = ProductCatalog(path)

            self.assertEqual(catalog.list_products(), {})
            self.assertEqual(len(list(Path(tmp_dir).glob("products.json*.corrupt"))), 1)

    def test_snippet_for_unknown_product_uses_placeholder_example(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            catalog = ProductCatalog(Path(tmp_dir) / "products.json")

            snippet = json.loads(catalog.render_snippet("Gold Kit"))

            self.assertEqual(snippet, {"Gold Kit": {"commands": ["say %player% bought Gold Kit"]}})


class ProductResolverTest(unittest.TestCase):
    def test_resolve_is_exact_and_case_sensitive(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"VIP Rank": {"commands": ["t1", "t2"]}})
            resolver = ProductResolver(ProductCatalog(path))

            self.assertEqual(resolver.resolve("VIP Rank"), ["t1", "t2"])
            self.assertIsNone(resolver.resolve("vip rank"))
            self.assertIsNone(resolver.resolve("Unknown"))

    def test_positive_results_are_cached_until_reload(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"VIP": {"commands": ["old"]}})
            resolver = ProductResolver(ProductCatalog(path))

            self.assertEqual(resolver.resolve("VIP"), ["old"])
            self.assertTrue(resolver.is_cached("VIP"))
            self.assertFalse(resolver.is_cached("Missing"))

            _write_catalog(path, {"VIP": {"commands": ["new"]}})
            self.assertEqual(resolver.resolve("VIP"), ["old"])

            resolver.reload()
            self.assertFalse(resolver.is_cached("VIP"))
            self.assertEqual(resolver.resolve("VIP"), ["new"])

    def test_resolve_during_catalog_reload_does_not_keep_old_commands(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"VIP": {"commands": ["old %player%"]}})
            catalog = ProductCatalog(path)
            resolver = ProductResolver(catalog)
            _write_catalog(path, {"VIP": {"commands": ["new %player%"]}})

            real_reload = catalog.reload

            def _reload_with_concurrent_lookup():
                resolver.resolve("VIP")
                real_reload()

            with patch.object(catalog, "reload", side_effect=_reload_with_concurrent_lookup):
                resolver.reload()

            self.assertEqual(resolver.resolve("VIP"), ["new %player%"])

    def test_reload_from_another_thread_waits_for_resolve(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"VIP": {"commands": ["old"]}})
            catalog = ProductCatalog(path)
            resolver = ProductResolver(catalog)
            _write_catalog(path, {"VIP": {"commands": ["new"]}})

            lookup_started = threading.Event()
            release_lookup = threading.Event()
            real_get = catalog.get

            def _slow_get(name):
                commands = real_get(name)
                lookup_started.set()
                release_lookup.wait(timeout=2)
                return commands

            with patch.object(catalog, "get", side_effect=_slow_get):
                worker = threading.Thread(target=resolver.resolve, args=("VIP",))
                worker.start()
                self.assertTrue(lookup_started.wait(timeout=2))
                reloader = threading.Thread(target=resolver.reload)
                reloader.start()
                release_lookup.set()
                worker.join(timeout=2)
                reloader.join(timeout=2)

            self.assertEqual(resolver.resolve("VIP"), ["new"])

    def test_product_without_commands_resolves_to_none(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"Empty": {"commands": []}})
            resolver = ProductResolver(ProductCatalog(path))

            with self.assertLogs("ordergate.products", level="WARNING"):
                self.assertIsNone(resolver.resolve("Empty"))
            self.assertEqual(resolver.lookup("Empty"), [])

    def test_returned_list_is_a_copy(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "products.json"
            _write_catalog(path, {"VIP": {"commands": ["t1"]}})
            resolver = ProductResolver(ProductCatalog(path))

            resolver.resolve("VIP").append("mutated")

            self.assertEqual(resolver.resolve("VIP"), ["t1"])


if __name__ == "__main__":
    unittest.main()
