"""認証ダイアログ/ポップアップのサイズ算出。"""

from __future__ import annotations

from dataclasses import dataclass

from addin_auth.errors import ErrorCode, OAuthException, create_config_error

DEFAULT_SIZE = (1024, 768)
SMALL_SCREEN_SIZE = (640, 480)
SMALL_SCREEN_MAX_WIDTH = 640
SCREEN_MARGIN = 30


@dataclass(frozen=True)
class DialogSize:
    """画面に対する割合（%）と、ピクセル換算値を保持する。"""

    width: float
    height: float
    pixel_width: int
    pixel_height: int

    def to_pixels(self) -> tuple[int, int]:
        return self.pixel_width, self.pixel_height

    def to_dialog_options(self) -> dict[str, float]:
        """割合指定を要求するホストのダイアログAPI向けのオプション。"""
        return {"width": self.width, "height": self.height}


def determine_dialog_size(screen_width: int, screen_height: int) -> DialogSize:
    """画面サイズから認証画面のサイズを決める。

    既定は1024x768、幅640px以下の画面では640x480を目標とし、
    画面に収まらない辺は「画面サイズ - 30」に切り詰める。

    Raises:
        OAuthException: 画面が余白より小さく、収まるサイズを決められない場合。
    """

    if min(screen_width, screen_height) <= SCREEN_MARGIN:
        raise OAuthException(
            create_config_error(
                ErrorCode.CONFIG_INVALID_VALUE,
                f"画面サイズが小さすぎます: {screen_width}x{screen_height}",
                details={"screen_width": screen_width, "screen_height": screen_height},
            )
        )

    if screen_width <= SMALL_SCREEN_MAX_WIDTH:
        width, height = SMALL_SCREEN_SIZE
    else:
        width, height = DEFAULT_SIZE

    pixel_width = _fit(width, screen_width)
    pixel_height = _fit(height, screen_height)
    return DialogSize(
        width=pixel_width * 100 / screen_width,
        height=pixel_height * 100 / screen_height,
        pixel_width=pixel_width,
        pixel_height=pixel_height,
    )


def _fit(value: int, dimension: int) -> int:
    return value if value < dimension else dimension - SCREEN_MARGIN
