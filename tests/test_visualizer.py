import io
import math
import tempfile
import unittest
from pathlib import Path

import folium

from visualizer import (OutputCounter, OutputError, build_route_map, circle_positions,
                        format_route, format_summary, render_tour_png, unique_output_path)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
LABELS = ("A", "B", "C", "D")
TOUR = (0, 1, 3, 2, 0)


class TestFormatting(unittest.TestCase):

    def test_format_route(self):
        self.assertEqual(format_route(LABELS, TOUR), "A -> B -> D -> C -> A")

    def test_format_summary(self):
        text = format_summary(("A", "B"), [[0, 10], [10, 0]])
        self.assertIn("Distance Matrix:", text)
        self.assertIn("  A:    0.0,   10.0", text)

    def test_circle_positions(self):
        points = circle_positions(4)
        self.assertEqual(len(points), 4)
        self.assertAlmostEqual(points[0][0], 0.0)
        self.assertAlmostEqual(points[0][1], 1.0)
        for x, y in points:
            self.assertAlmostEqual(math.hypot(x, y), 1.0)


class TestUniqueOutputPath(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.dir = Path(self.tmp.name)

    def test_missing_directory(self):
        with self.assertRaisesRegex(OutputError, "Output directory not found"):
            unique_output_path(self.dir / "nope", "tsp_solution", OutputCounter())

    def test_first_name_is_base(self):
        path = unique_output_path(self.dir, "tsp_solution", OutputCounter())
        self.assertEqual(path, self.dir / "tsp_solution.png")

    def test_skips_existing_files(self):
        (self.dir / "tsp_solution.png").touch()
        (self.dir / "tsp_solution_1.png").touch()
        path = unique_output_path(self.dir, "tsp_solution", OutputCounter())
        self.assertEqual(path, self.dir / "tsp_solution_2.png")

    def test_counter_is_advanced(self):
        counter = OutputCounter()
        first = unique_output_path(self.dir, "run", counter)
        second = unique_output_path(self.dir, "run", counter)
        self.assertNotEqual(first, second)
        self.assertEqual(second, self.dir / "run_1.png")
        self.assertEqual(counter.value, 2)

    def test_exhausted(self):
        with self.assertRaisesRegex(OutputError, "Too many output files"):
            unique_output_path(self.dir, "run", OutputCounter(value=10000))


class TestRender(unittest.TestCase):

    def test_png_to_buffer(self):
        buf = io.BytesIO()
        render_tour_png(LABELS, TOUR, 80.0, buf)
        self.assertTrue(buf.getvalue().startswith(PNG_SIGNATURE))

    def test_png_with_positions(self):
        buf = io.BytesIO()
        positions = [(52.52, 13.405), (48.8566, 2.3522), (51.5074, -0.1278), (50.85, 4.35)]
        render_tour_png(LABELS, TOUR, 1234.5, buf, positions)
        self.assertTrue(buf.getvalue().startswith(PNG_SIGNATURE))

    def test_png_to_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            target = Path(tmp) / "out.png"
            render_tour_png(LABELS, TOUR, 80, target)
            self.assertTrue(target.read_bytes().startswith(PNG_SIGNATURE))

    def test_route_map_without_positions(self):
        m = build_route_map(LABELS, TOUR)
        self.assertIsInstance(m, folium.Map)
        html = m.get_root().render()
        self.assertIn("Return to Start", html)
        self.assertIn("Start: A", html)

    def test_route_map_with_positions(self):
        positions = [(52.52, 13.405), (48.8566, 2.3522), (51.5074, -0.1278), (50.85, 4.35)]
        html = build_route_map(LABELS, TOUR, positions).get_root().render()
        self.assertIn("Stop 3: D", html)


if __name__ == '__main__':
    unittest.main()
