"""Progress card renderer."""

import logging
from pathlib import Path
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from ..analytics.models import HistoryRecord, Trend

logger = logging.getLogger(__name__)

TREND_LABELS = {
    Trend.ACCELERATING: "ACCELERATING",
    Trend.SLOWING: "SLOWING",
    Trend.STEADY: "STEADY",
    Trend.UNKNOWN: "TREND UNKNOWN",
}


def format_number(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{round(value):,}"


def format_on_track(on_track: Optional[bool]) -> str:
    if on_track is None:
        return "-"
    return "ON TRACK" if on_track else "BEHIND"


class DashboardRenderer:
    """Renders the campaign progress card to a monochrome PNG."""

    def __init__(self, output_dir: str = "static/images"):
        """
        Initialize renderer.

        Args:
            output_dir: Directory to save generated images
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

        self.fonts = self._load_fonts()

    def _load_fonts(self) -> dict:
        """Load fonts for rendering."""
        fonts = {}

        font_paths = [
            "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
            "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
            "/System/Library/Fonts/Helvetica.ttc",  # macOS
        ]

        try:
            for path in font_paths:
                if Path(path).exists():
                    fonts["header"] = ImageFont.truetype(path, 28)
                    fonts["title"] = ImageFont.truetype(path, 20)
                    fonts["normal"] = ImageFont.truetype(path, 16)
                    fonts["small"] = ImageFont.truetype(path, 13)
                    logger.info(f"Loaded fonts from {path}")
                    break
        except OSError as e:
            logger.warning(f"Could not load TrueType fonts: {e}, using default")
            fonts = {}

        if not fonts:
            default_font = ImageFont.load_default()
            fonts["header"] = default_font
            fonts["title"] = default_font
            fonts["normal"] = default_font
            fonts["small"] = default_font

        return fonts

    def render(
        self,
        latest: HistoryRecord,
        history: list[HistoryRecord],
        width: int = 800,
        height: int = 480,
    ) -> tuple[str, str]:
        """
        Render the progress card.

        Args:
            latest: Record shown in the header and pace table
            history: Records plotted in the chart, in capture order
            width: Image width
            height: Image height

        Returns:
            Tuple of (filename, file_path)
        """
        logger.info(f"Rendering progress card with {len(history)} history points")

        image = Image.new("RGB", (width, height), "white")
        draw = ImageDraw.Draw(image)

        self._draw_header(draw, latest, width)
        self._draw_progress_bar(draw, latest, x=20, y=95, width=width - 40, height=28)
        self._draw_pace_table(draw, latest, y=145, width=width)
        self._draw_chart(draw, history, x=20, y=265, width=width - 40, height=height - 320)
        self._draw_footer(draw, latest, width, height)

        image = self._convert_to_monochrome(image)

        timestamp = latest.captured_at.strftime("%Y%m%d-%H%M%S")
        filename = f"progress-{timestamp}"
        file_path = self.output_dir / f"{filename}.png"

        image.save(file_path, "PNG")
        logger.info(f"Saved progress card to {file_path}")

        return filename, str(file_path)

    def _draw_header(self, draw: ImageDraw, latest: HistoryRecord, width: int):
        """Draw signature count and goal."""
        snapshot = latest.snapshot
        count_text = f"{snapshot.count:,} signatures"
        draw.text((20, 15), count_text, fill="black", font=self.fonts["header"])

        goal_text = f"of {snapshot.goal:,} ({latest.progress_percent:.1f}%)"
        draw.text((20, 55), goal_text, fill="black", font=self.fonts["normal"])

        # Right-aligned: remaining and deadline
        if latest.remaining > 0:
            remaining_text = f"{latest.remaining:,} to go"
        else:
            remaining_text = "Goal reached"
        bbox = draw.textbbox((0, 0), remaining_text, font=self.fonts["title"])
        draw.text((width - (bbox[2] - bbox[0]) - 20, 18), remaining_text, fill="black", font=self.fonts["title"])

        if latest.required_pace:
            deadline_text = (
                f"Closes {latest.required_pace.deadline.strftime('%b %d, %Y')} "
                f"({latest.required_pace.days_remaining} days left)"
            )
        elif snapshot.deadline:
            deadline_text = f"Closed {snapshot.deadline.strftime('%b %d, %Y')}"
        else:
            deadline_text = "Deadline unknown"
        bbox = draw.textbbox((0, 0), deadline_text, font=self.fonts["small"])
        draw.text((width - (bbox[2] - bbox[0]) - 20, 58), deadline_text, fill="black", font=self.fonts["small"])

    def _draw_progress_bar(
        self, draw: ImageDraw, latest: HistoryRecord, x: int, y: int, width: int, height: int
    ):
        """Draw progress bar towards the goal, with a tick every 10%."""
        fraction = min(max(latest.progress_percent / 100, 0.0), 1.0)
        filled_width = int(fraction * width)

        if filled_width > 0:
            draw.rectangle([x, y, x + filled_width, y + height], fill="black", outline="black")

        draw.rectangle([x, y, x + width, y + height], outline="black", width=2)

        for i in range(1, 10):
            tick_x = x + int(i * width / 10)
            draw.line([tick_x, y + height, tick_x, y + height + 6], fill="black", width=1)

    def _draw_pace_table(self, draw: ImageDraw, latest: HistoryRecord, y: int, width: int):
        """Draw required vs actual pace per day and hour, plus the trend."""
        required = latest.required_pace
        observed = latest.observed_pace

        columns = [30, 180, 340, 500]
        for col, text in zip(columns, ["", "Required", "Actual", "Status"]):
            draw.text((col, y), text, fill="black", font=self.fonts["title"])

        rows = [
            (
                "Per day",
                required.per_day if required else None,
                observed.per_day if observed else None,
                latest.on_track_daily,
            ),
            (
                "Per hour",
                required.per_hour if required else None,
                observed.per_hour if observed else None,
                latest.on_track_hourly,
            ),
        ]

        row_y = y + 32
        for label, required_value, actual_value, on_track in rows:
            draw.text((columns[0], row_y), label, fill="black", font=self.fonts["normal"])
            draw.text((columns[1], row_y), format_number(required_value), fill="black", font=self.fonts["normal"])
            draw.text((columns[2], row_y), format_number(actual_value), fill="black", font=self.fonts["normal"])
            draw.text((columns[3], row_y), format_on_track(on_track), fill="black", font=self.fonts["normal"])
            row_y += 26

        # Trend (right-aligned)
        trend_text = TREND_LABELS[latest.trend]
        bbox = draw.textbbox((0, 0), trend_text, font=self.fonts["title"])
        draw.text((width - (bbox[2] - bbox[0]) - 30, y + 32), trend_text, fill="black", font=self.fonts["title"])

        draw.line([20, y + 100, width - 20, y + 100], fill="black", width=2)

    def _draw_chart(
        self, draw: ImageDraw, history: list[HistoryRecord], x: int, y: int, width: int, height: int
    ):
        """Draw signature count over time as a line chart."""
        draw.rectangle([x, y, x + width, y + height], outline="black", width=1)

        if len(history) < 2:
            draw.text((x + 10, y + 10), "Not enough history yet", fill="black", font=self.fonts["small"])
            return

        start = history[0].captured_at
        span = (history[-1].captured_at - start).total_seconds()
        low = min(r.count for r in history)
        high = max(r.count for r in history)

        if span <= 0:
            return

        value_range = (high - low) or 1
        points = [
            (
                x + int((r.captured_at - start).total_seconds() / span * width),
                y + height - int((r.count - low) / value_range * height),
            )
            for r in history
        ]
        draw.line(points, fill="black", width=2)

        draw.text((x + 5, y + 3), format_number(high), fill="black", font=self.fonts["small"])
        draw.text((x + 5, y + height - 18), format_number(low), fill="black", font=self.fonts["small"])

    def _draw_footer(self, draw: ImageDraw, latest: HistoryRecord, width: int, height: int):
        """Draw footer with capture time."""
        y = height - 35

        draw.line([20, y - 10, width - 20, y - 10], fill="black", width=2)

        if latest.observed_pace:
            summary_text = (
                f"+{latest.observed_pace.signature_diff:,} over "
                f"{latest.observed_pace.sample_count} samples"
            )
        else:
            summary_text = "Collecting history..."
        draw.text((20, y), summary_text, fill="black", font=self.fonts["normal"])

        time_text = f"Last update: {latest.captured_at.strftime('%Y-%m-%d %H:%M')} UTC"
        bbox = draw.textbbox((0, 0), time_text, font=self.fonts["small"])
        text_width = bbox[2] - bbox[0]
        draw.text((width - text_width - 20, y + 2), time_text, fill="black", font=self.fonts["small"])

    def _convert_to_monochrome(self, image: Image) -> Image:
        """Convert image to monochrome for e-ink display."""
        return image.convert("1")
