import numpy as np
import pytest

from agriconnect.geometry import Viewport, generate
from agriconnect.overlay import blank_frame, draw_primitives
from agriconnect.renderers import (
    ChannelRenderer,
    OpenCVRenderer,
    make_renderer,
    serialize,
)


class ChannelHarness:
    def __init__(self, fail_on: tuple = ()) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.fail_on = fail_on

    def invoke(self, method: str, payload: dict) -> None:
        self.calls.append((method, payload))
        if method in self.fail_on:
            raise RuntimeError(f"{method} exploded")

    def methods(self) -> list[str]:
        return [m for m, _ in self.calls]


def test_draw_primitives_paints_grid_box_and_markers() -> None:
    frame = blank_frame(400, 800)
    assert frame.shape == (800, 400, 3)
    draw_primitives(frame, generate(Viewport(400, 800), 30.0, True))

    # translucent green grid line at x=113
    b, g, r = frame[10, 113]
    assert g > 0 and b == 0 and r == 0
    # solid red box border at left edge x=140, mid-height
    assert tuple(frame[400, 140]) == (0, 0, 255)
    # blue marker rim, seen through the translucent red box fill
    b, g, r = frame[400, 215]
    assert b > 200 and r < 60 and g == 0


def test_hidden_overlay_leaves_frame_untouched() -> None:
    frame = blank_frame(320, 240)
    draw_primitives(frame, generate(Viewport(320, 240), 30.0, False))
    assert not frame.any()


def test_opencv_renderer_composes_last_scene() -> None:
    renderer = OpenCVRenderer()
    vp = Viewport(400, 800)
    renderer.render(generate(vp, 30.0, True), vp)
    assert renderer.render_count == 1
    assert renderer.viewport == vp

    frame = np.zeros((800, 400, 3), dtype=np.uint8)
    renderer.compose(frame)
    assert frame.any()

    renderer.close()
    assert renderer.scene == ()
    untouched = np.zeros((800, 400, 3), dtype=np.uint8)
    renderer.compose(untouched)
    assert not untouched.any()


def test_channel_renderer_initializes_then_renders() -> None:
    harness = ChannelHarness()
    renderer = ChannelRenderer(harness.invoke)
    vp = Viewport(400, 800)
    prims = generate(vp, 30.0, True)

    renderer.render(prims, vp)
    renderer.render(prims, vp)

    assert harness.methods() == ["initialize", "render", "render"]
    assert harness.calls[0][1] == {"width": 400, "height": 800}
    payload = harness.calls[1][1]
    assert len(payload["primitives"]) == len(prims)
    assert payload["primitives"][0] == {"type": "grid", "orientation": "vertical", "position": pytest.approx(113.1)}

    renderer.close()
    assert harness.methods()[-1] == "dispose"
    assert renderer.initialized is False


def test_channel_renderer_reinitializes_on_viewport_change() -> None:
    harness = ChannelHarness()
    renderer = ChannelRenderer(harness.invoke)
    renderer.render((), Viewport(100, 100))
    renderer.render((), Viewport(200, 100))
    assert harness.methods() == ["initialize", "render", "initialize", "render"]


def test_channel_failures_are_contained() -> None:
    harness = ChannelHarness(fail_on=("render",))
    renderer = ChannelRenderer(harness.invoke)
    vp = Viewport(100, 100)

    renderer.render(generate(vp, 10.0, True), vp)
    renderer.render(generate(vp, 10.0, True), vp)

    assert renderer.initialized is True
    assert len(renderer.failures) == 2
    assert renderer.failures[0].startswith("render: RuntimeError")


def test_unbound_channel_never_raises() -> None:
    renderer = ChannelRenderer()
    renderer.render((), Viewport(10, 10))
    renderer.close()
    assert renderer.initialized is False
    assert renderer.failures and "NotImplementedError" in renderer.failures[0]


def test_serialize_rejects_unknown_type() -> None:
    with pytest.raises(TypeError):
        serialize(object())


def test_make_renderer() -> None:
    assert isinstance(make_renderer("opencv"), OpenCVRenderer)
    assert isinstance(make_renderer(" Native "), ChannelRenderer)
    with pytest.raises(ValueError):
        make_renderer("vulkan")
