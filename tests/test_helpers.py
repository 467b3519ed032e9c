import unittest
from unittest import mock

from yt_dlp.utils import DownloadError

import helpers
from errors import DependencyError
from helpers import get_tiktok_id, get_video_info, get_youtube_id, is_tiktok_short_url


class ClassifierTests(unittest.TestCase):
    def test_youtube_url_shapes(self):
        cases = {
            "https://youtu.be/abc123": "abc123",
            "https://youtu.be/abc123?t=10": "abc123",
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ": "dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=xyz&list=PL1": "xyz",
            "https://youtube.com/shorts/short42": "short42",
            "https://www.youtube.com/embed/emb7": "emb7",
            "  https://www.youtube.com/watch?v=trimmed  ": "trimmed",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                self.assertEqual(get_youtube_id(url), expected)
                self.assertEqual(get_video_info(url), {"platform": "youtube", "videoId": expected})

    def test_youtube_without_id(self):
        self.assertIsNone(get_youtube_id("https://www.youtube.com/"))
        self.assertIsNone(get_youtube_id("https://www.youtube.com/shorts/"))
        self.assertIsNone(get_youtube_id("https://youtu.be/"))

    def test_tiktok_url_shapes(self):
        cases = {
            "https://www.tiktok.com/@someone/video/7234567890123456789": "7234567890123456789",
            "https://m.tiktok.com/v/video/123?lang=en": "123",
            "https://tiktok.com/@a.b/video/42/": "42",
        }
        for url, expected in cases.items():
            with self.subTest(url=url):
                self.assertEqual(get_tiktok_id(url), expected)
                self.assertEqual(get_video_info(url), {"platform": "tiktok", "videoId": expected})

    def test_tiktok_non_numeric_id_rejected(self):
        self.assertIsNone(get_tiktok_id("https://www.tiktok.com/@someone/video/abc"))
        self.assertIsNone(get_tiktok_id("https://www.tiktok.com/@someone"))

    def test_short_links_never_classify(self):
        for url in ("https://vm.tiktok.com/ZMabc123/", "https://www.tiktok.com/t/ZTRabc/"):
            with self.subTest(url=url):
                self.assertIsNone(get_video_info(url))
                self.assertTrue(is_tiktok_short_url(url))

    def test_garbage_input(self):
        for url in ("", "not a url", "youtu.be/abc", "http://[::1", None, "https://example.com/watch?v=1"):
            with self.subTest(url=url):
                self.assertIsNone(get_video_info(url))

    def test_full_tiktok_url_is_not_short(self):
        self.assertFalse(is_tiktok_short_url("https://www.tiktok.com/@someone/video/123"))
        self.assertFalse(is_tiktok_short_url("https://youtu.be/abc"))


class ResolverTests(unittest.TestCase):
    def _patch_ydl(self):
        patcher = mock.patch("helpers.YoutubeDL")
        ydl_cls = patcher.start()
        self.addCleanup(patcher.stop)
        return ydl_cls.return_value.__enter__.return_value

    def test_resolves_to_canonical_video(self):
        ydl = self._patch_ydl()
        ydl.extract_info.return_value = {"_type": "url", "url": "https://www.tiktok.com/@kid/video/987"}

        resolved = helpers.resolve_tiktok_short_url("https://vm.tiktok.com/ZMabc/")

        self.assertEqual(resolved, "https://www.tiktok.com/@kid/video/987")
        ydl.extract_info.assert_called_once_with("https://vm.tiktok.com/ZMabc/", download=False, process=False)

    def test_download_error_is_dependency_error(self):
        ydl = self._patch_ydl()
        ydl.extract_info.side_effect = DownloadError("network down")

        with self.assertRaises(DependencyError):
            helpers.resolve_tiktok_short_url("https://vm.tiktok.com/ZMabc/")

    def test_non_tiktok_target_rejected(self):
        ydl = self._patch_ydl()
        ydl.extract_info.return_value = {"_type": "url", "url": "https://youtu.be/abc"}

        with self.assertRaises(DependencyError):
            helpers.resolve_tiktok_short_url("https://vm.tiktok.com/ZMabc/")


if __name__ == "__main__":
    unittest.main()
