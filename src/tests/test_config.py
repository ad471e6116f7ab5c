import json
import os
import shutil
import tempfile
import unittest

from news_flash import config
from news_flash.config import Settings
from news_flash.sources.manager import get_source
from news_flash.sources.sina import SinaSource


class TestSettingsLoading(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp(prefix="news_flash_config_")
        self.config_path = os.path.join(self.test_dir, ".config/news_flash/config.json")

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def write(self, data):
        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            if isinstance(data, str):
                f.write(data)
            else:
                json.dump(data, f)

    def test_missing_file_creates_defaults(self):
        settings = config.load_settings(self.config_path)

        self.assertEqual(settings, Settings())
        self.assertTrue(os.path.exists(self.config_path))
        with open(self.config_path, encoding="utf-8") as f:
            saved = json.load(f)
        self.assertEqual(saved["refresh_interval"], 30.0)
        self.assertEqual(saved["news_sound"], "Submarine")

    def test_values_are_read_and_clamped(self):
        self.write(
            {
                "speech_rate": 0.8,
                "refresh_interval": 120,
                "monitored_keywords": ["股市", 5, "Fed"],
                "keyword_broadcast_title": True,
                "unknown_key": "ignored",
            }
        )
        settings = config.load_settings(self.config_path)

        self.assertEqual(settings.speech_rate, 0.8)
        self.assertEqual(settings.refresh_interval, 60.0)
        self.assertEqual(settings.monitored_keywords, ["股市", "Fed"])
        self.assertTrue(settings.keyword_broadcast_title)

    def test_unset_numbers_fall_back_to_defaults(self):
        self.write({"speech_rate": 0, "refresh_interval": -1})
        settings = config.load_settings(self.config_path)

        self.assertEqual(settings.speech_rate, config.DEFAULT_SPEECH_RATE)
        self.assertEqual(settings.refresh_interval, config.DEFAULT_REFRESH_INTERVAL)

    def test_malformed_source_blocks_are_dropped(self):
        self.write({"source": 3, "sources": []})
        settings = config.load_settings(self.config_path)
        self.assertEqual(settings.source, "sina")
        self.assertEqual(settings.sources, {})
        source = get_source({"source": settings.source, "sources": settings.sources})
        self.assertIsInstance(source, SinaSource)

        self.write({"sources": {"sina": {"url": "http://feed.test"}, "other": "junk"}})
        settings = config.load_settings(self.config_path)
        self.assertEqual(settings.sources, {"sina": {"url": "http://feed.test"}})

    def test_corrupt_file_uses_defaults(self):
        self.write("{not json")
        self.assertEqual(config.load_settings(self.config_path), Settings())

        self.write([1, 2, 3])
        self.assertEqual(config.load_settings(self.config_path), Settings())

    def test_save_round_trip(self):
        settings = Settings(monitored_keywords=["黄金"], refresh_interval=15.0, voice="Ting-Ting")
        config.save_settings(settings, self.config_path)

        self.assertEqual(config.load_settings(self.config_path), settings)
        with open(self.config_path, encoding="utf-8") as f:
            self.assertIn("黄金", f.read())


class TestKeywords(unittest.TestCase):
    def test_add_keyword_trims_and_rejects_duplicates(self):
        keywords = []
        self.assertTrue(config.add_keyword(keywords, "  股市 "))
        self.assertFalse(config.add_keyword(keywords, "股市"))
        self.assertFalse(config.add_keyword(keywords, "   "))
        self.assertTrue(config.add_keyword(keywords, "Fed"))
        self.assertEqual(keywords, ["股市", "Fed"])

    def test_remove_keyword(self):
        keywords = ["a", "b"]
        self.assertFalse(config.remove_keyword(keywords, 5))
        self.assertFalse(config.remove_keyword(keywords, -1))
        self.assertTrue(config.remove_keyword(keywords, 0))
        self.assertEqual(keywords, ["b"])

    def test_clamp_interval(self):
        self.assertEqual(config.clamp_interval(1), 5.0)
        self.assertEqual(config.clamp_interval(30), 30.0)
        self.assertEqual(config.clamp_interval(61), 60.0)


if __name__ == "__main__":
    unittest.main()
