"""ダイアログサイズ算出のプロパティテスト"""

import unittest

from hypothesis import given, settings, strategies as st

from addin_auth.oauth.sizing import determine_dialog_size

SCREEN = st.integers(min_value=200, max_value=8000)


class TestSizingProperties(unittest.TestCase):
    """determine_dialog_size の性質を検証する"""

    @given(SCREEN, SCREEN)
    @settings(max_examples=200, deadline=None)
    def test_always_fits_on_screen(self, screen_width, screen_height):
        """算出したサイズは常に画面より小さく、目標サイズを超えない"""
        size = determine_dialog_size(screen_width, screen_height)
        target_width, target_height = (640, 480) if screen_width <= 640 else (1024, 768)

        self.assertGreater(size.pixel_width, 0)
        self.assertGreater(size.pixel_height, 0)
        self.assertLess(size.pixel_width, screen_width)
        self.assertLess(size.pixel_height, screen_height)
        self.assertLessEqual(size.pixel_width, target_width)
        self.assertLessEqual(size.pixel_height, target_height)
        self.assertLess(size.width, 100)
        self.assertLess(size.height, 100)
        self.assertAlmostEqual(size.width * screen_width / 100, size.pixel_width)


if __name__ == "__main__":  # pragma: no cover - 実行用
    unittest.main()
