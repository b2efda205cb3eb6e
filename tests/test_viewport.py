"""
Viewport controller tests: profiles, framing plans and camera transitions.
"""

import unittest

from stepflow.core.models import FlowNode, GraphModel, HighlightEntry, NodeData, Position
from stepflow.engine.clock import VirtualScheduler
from stepflow.engine.resolver import resolve
from stepflow.engine.viewport import (
    COMPACT,
    PLAN_HISTORY,
    SPACIOUS,
    Bounds,
    Camera,
    DeviceInfo,
    ViewportController,
    camera_for_bounds,
    ease_in_out,
    is_tablet_device,
    node_bounds,
    select_profile,
)


def make_graph():
    return GraphModel(
        nodes=(
            FlowNode(id="a", position=Position(x=0, y=0), data=NodeData(label="A")),
            FlowNode(id="b", position=Position(x=1000, y=0), data=NodeData(label="B")),
            FlowNode(id="c", position=Position(x=0, y=800), data=NodeData(label="C")),
        ),
        edges=(),
    )


TABLE = (
    HighlightEntry(),
    HighlightEntry(nodes=("a",)),
    HighlightEntry(nodes=("a", "b")),
)


# ============================================
# Profiles and Device Heuristic
# ============================================

class TestProfiles(unittest.TestCase):

    def test_focus_padding_shrinks_with_node_count(self):
        self.assertAlmostEqual(SPACIOUS.focus_padding(1), 0.8)
        self.assertAlmostEqual(SPACIOUS.focus_padding(5), 0.6)
        self.assertAlmostEqual(SPACIOUS.focus_padding(40), 0.2)
        self.assertAlmostEqual(COMPACT.focus_padding(1), 0.5)
        self.assertAlmostEqual(COMPACT.focus_padding(30), 0.15)

    def test_ipad_user_agent_is_tablet(self):
        self.assertTrue(is_tablet_device(DeviceInfo(user_agent="Mozilla/5.0 (iPad; CPU OS 17_0)")))

    def test_ipados_reporting_as_mac_is_tablet(self):
        info = DeviceInfo(user_agent="Mozilla/5.0 (Macintosh)", platform="MacIntel", max_touch_points=5)
        self.assertTrue(is_tablet_device(info))

    def test_tablet_keyword_is_tablet(self):
        self.assertTrue(is_tablet_device(DeviceInfo(user_agent="Android 14; Tablet")))

    def test_touch_viewport_width_range(self):
        self.assertTrue(is_tablet_device(DeviceInfo(max_touch_points=2, viewport_width=1024)))
        self.assertFalse(is_tablet_device(DeviceInfo(max_touch_points=2, viewport_width=390)))

    def test_desktop_is_not_tablet(self):
        self.assertFalse(is_tablet_device(DeviceInfo(viewport_width=1024)))

    def test_select_profile(self):
        self.assertIs(select_profile("compact"), COMPACT)
        self.assertIs(select_profile("spacious", DeviceInfo(user_agent="iPad")), SPACIOUS)
        self.assertIs(select_profile("auto", DeviceInfo(user_agent="iPad")), COMPACT)
        self.assertIs(select_profile("auto"), SPACIOUS)


# ============================================
# Geometry
# ============================================

class TestGeometry(unittest.TestCase):

    def test_node_bounds_uses_fallback_size(self):
        nodes = make_graph().nodes[:2]
        self.assertEqual(node_bounds(nodes, 180, 60), Bounds(0, 0, 1180, 60))

    def test_node_bounds_empty(self):
        self.assertIsNone(node_bounds([]))

    def test_camera_for_bounds_centers_and_clamps(self):
        camera = camera_for_bounds(Bounds(0, 0, 100, 100), 1000, 1000, 0.0, 0.5, 1.2)
        self.assertAlmostEqual(camera.zoom, 1.2)
        self.assertAlmostEqual(camera.x, 440)
        self.assertAlmostEqual(camera.y, 440)

    def test_camera_for_bounds_respects_min_zoom(self):
        camera = camera_for_bounds(Bounds(0, 0, 10000, 10000), 1000, 1000, 0.2, 0.5, 1.2)
        self.assertAlmostEqual(camera.zoom, 0.5)

    def test_ease_in_out_endpoints(self):
        self.assertEqual(ease_in_out(0), 0)
        self.assertEqual(ease_in_out(1), 1)
        self.assertAlmostEqual(ease_in_out(0.5), 0.5)


# ============================================
# Controller
# ============================================

class TestViewportController(unittest.TestCase):

    def setUp(self):
        self.clock = VirtualScheduler()
        self.graph = make_graph()
        self.step = 0
        self.controller = ViewportController(
            self.clock,
            frame_source=lambda: resolve(self.step, self.graph, TABLE),
            node_source=lambda: self.graph.nodes,
            profile=SPACIOUS,
        )

    def test_mount_fits_all_after_delay(self):
        self.controller.mount()
        self.clock.advance(199)
        self.assertIsNone(self.controller.last_plan)
        self.clock.advance(1)
        plan = self.controller.last_plan
        self.assertEqual(plan.kind, "fit_all")
        self.assertEqual(plan.padding, SPACIOUS.initial_fit_padding)
        self.assertEqual(plan.duration_ms, SPACIOUS.initial_fit_duration_ms)

    def test_empty_active_set_fits_all(self):
        plan = self.controller.frame_active()
        self.assertEqual(plan.kind, "fit_all")
        self.assertEqual(plan.padding, 0.2)
        self.assertLessEqual(plan.camera.zoom, 1.2)
        self.assertEqual(set(plan.node_ids), {"a", "b", "c"})

    def test_focus_on_active_nodes(self):
        self.step = 1
        plan = self.controller.frame_active()
        self.assertEqual(plan.kind, "focus")
        self.assertEqual(plan.node_ids, ("a",))
        self.assertAlmostEqual(plan.padding, 0.8)
        self.assertAlmostEqual(plan.camera.zoom, SPACIOUS.max_zoom)

    def test_focus_padding_for_two_nodes(self):
        self.step = 2
        plan = self.controller.frame_active()
        self.assertEqual(set(plan.node_ids), {"a", "b"})
        self.assertAlmostEqual(plan.padding, 0.75)

    def test_step_change_waits_for_settle(self):
        self.step = 1
        self.controller.on_step_change(1)
        self.assertTrue(self.controller.settle_pending)
        self.clock.advance(49)
        self.assertIsNone(self.controller.last_plan)
        self.clock.advance(1)
        self.assertEqual(self.controller.last_plan.kind, "focus")
        self.assertFalse(self.controller.settle_pending)

    def test_newer_step_replaces_pending_settle(self):
        self.step = 1
        self.controller.on_step_change(1)
        self.clock.advance(30)
        self.step = 2
        self.controller.on_step_change(2)
        self.clock.advance(30)
        self.assertEqual(list(self.controller.plans), [])
        self.clock.advance(20)
        self.assertEqual(len(self.controller.plans), 1)
        self.assertEqual(set(self.controller.last_plan.node_ids), {"a", "b"})

    def test_transition_completes_at_target(self):
        target = Camera(x=100, y=50, zoom=1.1)
        self.controller.set_camera(target, 800)
        self.assertTrue(self.controller.in_flight)
        self.clock.advance(800)
        self.assertFalse(self.controller.in_flight)
        self.assertEqual(self.controller.camera, target)

    def test_newer_transition_starts_from_current_camera(self):
        first = self.controller.set_camera(Camera(x=400, y=0, zoom=1.0), 800)
        self.clock.advance(400)
        midway = self.controller.camera
        self.assertAlmostEqual(midway.x, 200)

        second = self.controller.set_camera(Camera(x=0, y=0, zoom=1.0), 800)
        self.assertGreater(second, first)
        self.assertAlmostEqual(self.controller.camera.x, midway.x)

        self.clock.advance(400)
        self.assertTrue(self.controller.in_flight)
        self.clock.advance(400)
        self.assertFalse(self.controller.in_flight)
        self.assertEqual(self.controller.camera.x, 0)

    def test_zero_duration_jumps(self):
        self.controller.set_camera(Camera(x=7, y=8, zoom=0.9), 0)
        self.assertFalse(self.controller.in_flight)
        self.assertEqual(self.controller.camera, Camera(x=7, y=8, zoom=0.9))

    def test_manual_zoom_is_clamped(self):
        for _ in range(10):
            plan = self.controller.zoom_in()
        self.assertEqual(plan.kind, "manual")
        self.assertAlmostEqual(self.controller.target.zoom, SPACIOUS.manual_max_zoom)
        for _ in range(20):
            self.controller.zoom_out()
        self.assertAlmostEqual(self.controller.target.zoom, SPACIOUS.manual_min_zoom)

    def test_manual_zoom_keeps_viewport_center(self):
        self.controller.zoom_in()
        target = self.controller.target
        self.assertAlmostEqual((640 - target.x) / target.zoom, 640)
        self.assertAlmostEqual((360 - target.y) / target.zoom, 360)
        self.assertEqual(self.controller.last_plan.duration_ms, 200)

    def test_manual_zoom_cancels_pending_settle(self):
        self.step = 1
        self.controller.on_step_change(1)
        self.controller.zoom_in()
        self.clock.advance(100)
        self.assertEqual([p.kind for p in self.controller.plans], ["manual"])

    def test_reset_view_uses_reset_bounds(self):
        plan = self.controller.reset_view()
        self.assertEqual(plan.kind, "fit_all")
        self.assertEqual(plan.padding, SPACIOUS.reset_fit_padding)
        self.assertGreaterEqual(plan.camera.zoom, SPACIOUS.reset_min_zoom)
        self.assertLessEqual(plan.camera.zoom, SPACIOUS.reset_max_zoom)

    def test_dispose_cancels_everything(self):
        self.controller.set_camera(Camera(x=10), 800)
        self.controller.on_step_change(1)
        self.controller.dispose()
        self.assertEqual(self.clock.pending, 0)
        self.controller.on_step_change(2)
        self.clock.advance(1000)
        self.assertEqual(list(self.controller.plans), [])


    def test_halt_drops_settle_and_freezes_camera(self):
        self.controller.set_camera(Camera(x=400, y=0, zoom=1.0), 800)
        self.clock.advance(400)
        self.step = 1
        self.controller.on_step_change(1)
        token = self.controller.token

        self.controller.halt()
        frozen = self.controller.camera
        self.assertGreater(self.controller.token, token)
        self.assertFalse(self.controller.settle_pending)
        self.assertFalse(self.controller.in_flight)

        self.clock.advance(1000)
        self.assertEqual(self.controller.camera, frozen)
        self.assertIsNone(self.controller.last_plan)

    def test_mount_after_dispose_fits_again(self):
        self.controller.dispose()
        self.controller.mount()
        self.clock.advance(200)
        self.assertEqual(self.controller.last_plan.kind, "fit_all")

    def test_plan_history_is_bounded(self):
        for _ in range(PLAN_HISTORY + 5):
            self.controller.zoom_in()
        self.assertEqual(len(self.controller.plans), PLAN_HISTORY)
        self.assertIs(self.controller.plans[-1], self.controller.last_plan)


if __name__ == "__main__":
    unittest.main()
