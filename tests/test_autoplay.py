"""
Autoplay scheduler tests on virtual time.
"""

import unittest

from stepflow.core.flow_state import FlowState, FlowStateContainer
from stepflow.engine.autoplay import AutoplayScheduler
from stepflow.engine.clock import VirtualScheduler


class TestAutoplayScheduler(unittest.TestCase):

    def setUp(self):
        self.clock = VirtualScheduler()

    def make(self, max_step=10, step=0, interval_ms=2000):
        flow = FlowStateContainer(max_step, FlowState(step=step))
        return flow, AutoplayScheduler(flow, self.clock, interval_ms=interval_ms)

    def test_advances_once_per_interval(self):
        flow, autoplay = self.make()
        autoplay.play()
        self.clock.advance(1999)
        self.assertEqual(flow.step, 0)
        self.clock.advance(1)
        self.assertEqual(flow.step, 1)
        self.clock.advance(4000)
        self.assertEqual(flow.step, 3)
        self.assertTrue(flow.is_playing)

    def test_one_tick_from_penultimate_then_stop(self):
        flow, autoplay = self.make(step=9)
        autoplay.play()
        self.clock.advance(2000)
        self.assertEqual(flow.step, 10)
        self.assertFalse(flow.is_playing)
        self.assertEqual(autoplay.ticks, 1)
        self.assertFalse(autoplay.has_live_timer)
        self.clock.advance(10000)
        self.assertEqual(flow.step, 10)

    def test_play_at_terminal_does_nothing(self):
        flow, autoplay = self.make(step=10)
        autoplay.play()
        self.assertFalse(flow.is_playing)
        self.assertEqual(self.clock.pending, 0)

    def test_pause_before_first_tick(self):
        flow, autoplay = self.make()
        autoplay.play()
        self.clock.advance(500)
        autoplay.pause()
        self.clock.advance(5000)
        self.assertEqual(flow.step, 0)
        self.assertEqual(autoplay.ticks, 0)

    def test_play_is_idempotent(self):
        flow, autoplay = self.make()
        autoplay.play()
        autoplay.play()
        self.assertEqual(self.clock.pending, 1)
        self.clock.advance(2000)
        self.assertEqual(flow.step, 1)

    def test_flow_play_starts_autoplay(self):
        flow, autoplay = self.make()
        flow.play()
        self.assertTrue(autoplay.has_live_timer)
        self.clock.advance(2000)
        self.assertEqual(flow.step, 1)

    def test_dispose_cancels_timer(self):
        flow, autoplay = self.make()
        autoplay.play()
        autoplay.dispose()
        self.assertEqual(self.clock.pending, 0)
        self.clock.advance(10000)
        self.assertEqual(flow.step, 0)

    def test_reset_returns_to_idle_step_zero(self):
        flow, autoplay = self.make()
        autoplay.play()
        self.clock.advance(6000)
        autoplay.reset()
        self.assertEqual(flow.state, FlowState())
        self.clock.advance(10000)
        self.assertEqual(flow.step, 0)

    def test_generation_bumps_on_stop(self):
        flow, autoplay = self.make()
        before = autoplay.generation
        autoplay.play()
        autoplay.pause()
        self.assertGreater(autoplay.generation, before)

    def test_goto_while_playing_continues_from_new_step(self):
        flow, autoplay = self.make()
        autoplay.play()
        self.clock.advance(2000)
        flow.set_step(6)
        self.assertTrue(flow.is_playing)
        self.clock.advance(2000)
        self.assertEqual(flow.step, 7)
        self.assertTrue(flow.is_playing)

    def test_goto_terminal_while_playing_stops_on_next_tick(self):
        flow, autoplay = self.make()
        autoplay.play()
        self.clock.advance(2000)
        flow.set_step(10)
        self.assertTrue(flow.is_playing)
        self.clock.advance(2000)
        self.assertEqual(flow.step, 10)
        self.assertFalse(flow.is_playing)
        self.assertFalse(autoplay.has_live_timer)

    # ============================================
    # Attach / Detach
    # ============================================

    def test_detached_scheduler_does_not_tick(self):
        flow = FlowStateContainer(10)
        autoplay = AutoplayScheduler(flow, self.clock, attach=False)
        self.assertFalse(autoplay.attached)
        flow.play()
        self.assertEqual(self.clock.pending, 0)

    def test_attach_resumes_a_playing_flow(self):
        flow = FlowStateContainer(10)
        autoplay = AutoplayScheduler(flow, self.clock, attach=False)
        flow.play()
        autoplay.attach()
        self.clock.advance(2000)
        self.assertEqual(flow.step, 1)

    def test_reattach_after_dispose(self):
        flow, autoplay = self.make()
        autoplay.dispose()
        self.assertFalse(autoplay.attached)
        autoplay.attach()
        autoplay.play()
        self.clock.advance(2000)
        self.assertEqual(flow.step, 1)
        self.assertTrue(flow.is_playing)

    def test_terminal_stop_is_flagged_to_listeners(self):
        flow, autoplay = self.make(step=9)
        seen = []
        flow.subscribe(lambda new, old: seen.append((new.is_playing, autoplay.stopping_at_terminal)))
        autoplay.play()
        self.clock.advance(2000)
        self.assertEqual(seen[-1], (False, True))
        self.assertFalse(autoplay.stopping_at_terminal)

        flow.play()
        autoplay.pause()
        self.assertEqual(seen[-1], (False, False))

    def test_full_run_reaches_terminal(self):
        flow, autoplay = self.make(max_step=4, interval_ms=100)
        autoplay.play()
        self.clock.advance(1000)
        self.assertEqual(flow.step, 4)
        self.assertFalse(flow.is_playing)
        self.assertEqual(autoplay.ticks, 4)


if __name__ == "__main__":
    unittest.main()
