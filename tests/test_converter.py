"""
Converter tests: element shape, styling, grouping, background images.
"""

import json

import fitz  # PyMuPDF
import pytest

from builders import v5_file, v5_point, v5_stroke
from remarkable_excalidraw.converter import (
    BackgroundImage,
    ConversionOptions,
    ExcalidrawConverter,
    convert,
    dumps,
    sniff_mime_type,
    write_excalidraw,
)
from remarkable_excalidraw.parser import (
    Document,
    Layer,
    Pen,
    PenColor,
    Point,
    Stroke,
    Version,
    decode,
)


def point(x, y, pressure=0.5):
    return Point(x=x, y=y, speed=0.0, direction=0.0, width=0.0, pressure=pressure)


def make_doc(*layers):
    """layers: lists of strokes; layer_index is filled in."""
    doc = Document(version=Version.V5)
    for index, strokes in enumerate(layers):
        for stroke in strokes:
            stroke.layer_index = index
        doc.layers.append(Layer(name=f"Layer {index + 1}", strokes=list(strokes)))
    return doc


def stroke(pen=Pen.BALLPOINT, color=PenColor.BLACK, width=2.0, points=None):
    return Stroke(pen=pen, color=color, width=width,
                  points=points if points is not None else [point(0, 0), point(4, 3)])


@pytest.fixture
def converter(id_factory, seed_factory, clock):
    def build(**options):
        return ExcalidrawConverter(ConversionOptions(**options), id_factory, seed_factory, clock)
    return build


def freedraw(document):
    return [e for e in document["elements"] if e["type"] == "freedraw"]


def test_end_to_end_from_v5_bytes(converter):
    points = [v5_point(0, 0), v5_point(10, 0), v5_point(10, 10)]
    data = v5_file([[v5_stroke(Pen.FINELINER, PenColor.BLACK, 2.0, points)]])
    doc = decode(data).document

    out = converter(stroke_width_scale=0.5).convert(doc)

    elements = freedraw(out)
    assert len(elements) == 1
    element = elements[0]
    assert element["strokeColor"] == "#000000"
    assert element["strokeWidth"] == 1
    assert element["points"] == [[0, 0], [10, 0], [10, 10]]
    assert element["pressures"] == [0.5, 0.5, 0.5]
    assert element["simulatePressure"] is True


def test_document_envelope(converter):
    out = converter().convert(make_doc([stroke()]))
    assert out["type"] == "excalidraw"
    assert out["version"] == 2
    assert out["source"] == "remarkable-excalidraw"
    assert out["appState"] == {"viewBackgroundColor": "#ffffff", "currentItemFontFamily": 1}
    assert out["files"] == {}


def test_freedraw_element_fields(converter, clock):
    out = converter().convert(make_doc([stroke(points=[point(5, 7), point(9, 10)])]))
    element = out["elements"][0]

    assert list(element) == [
        "type", "version", "versionNonce", "isDeleted", "id", "fillStyle",
        "strokeWidth", "strokeStyle", "roughness", "opacity", "angle", "x", "y",
        "strokeColor", "backgroundColor", "width", "height", "seed", "groupIds",
        "frameId", "roundness", "boundElements", "updated", "link", "locked",
        "points", "pressures", "simulatePressure", "lastCommittedPoint",
    ]
    assert element["type"] == "freedraw"
    assert (element["x"], element["y"]) == (5, 7)
    assert (element["width"], element["height"]) == (4, 3)
    assert element["fillStyle"] == "solid"
    assert element["backgroundColor"] == "transparent"
    assert element["isDeleted"] is False
    assert element["locked"] is False
    assert element["frameId"] is None
    assert element["roundness"] is None
    assert element["boundElements"] is None
    assert element["lastCommittedPoint"] is None
    assert element["link"] is None
    assert element["updated"] == clock()


def test_bounding_box_origin_is_zero(converter):
    points = [point(30, 12), point(-4, 50), point(18, -7)]
    element = converter().convert(make_doc([stroke(points=points)]))["elements"][0]
    assert min(p[0] for p in element["points"]) == 0
    assert min(p[1] for p in element["points"]) == 0
    assert (element["x"], element["y"]) == (-4, -7)
    assert (element["width"], element["height"]) == (34, 57)


@pytest.mark.parametrize("pen,multiplier", [
    (Pen.BALLPOINT, 1.0),
    (Pen.MARKER_2, 1.8),
    (Pen.PAINTBRUSH, 2.5),
    (Pen.CALIGRAPHY, 1.5),
    (999, 1.0),
])
def test_stroke_width_uses_pen_multiplier(converter, pen, multiplier):
    element = converter(stroke_width_scale=1.0).convert(make_doc([stroke(pen=pen, width=4.0)]))["elements"][0]
    assert element["strokeWidth"] == pytest.approx(min(16, max(1, 4.0 * multiplier)))


def test_stroke_width_clamped(converter):
    thin = converter(stroke_width_scale=0.25).convert(make_doc([stroke(width=0.1)]))
    thick = converter(stroke_width_scale=2.0).convert(make_doc([stroke(pen=Pen.HIGHLIGHTER, width=50.0)]))
    assert freedraw(thin)[0]["strokeWidth"] == 1
    assert freedraw(thick)[0]["strokeWidth"] == 16


def test_highlighter_style(converter):
    element = converter().convert(make_doc([stroke(pen=Pen.HIGHLIGHTER, color=PenColor.YELLOW)]))["elements"][0]
    assert element["opacity"] == 40
    assert element["roughness"] == 1
    assert element["strokeColor"] == "#ffeb3b"
    assert element["simulatePressure"] is True


def test_unknown_pen_and_color_use_defaults(converter):
    element = converter().convert(make_doc([stroke(pen=77, color=55)]))["elements"][0]
    assert element["strokeColor"] == "#000000"
    assert element["opacity"] == 100
    assert element["roughness"] == 1
    assert element["strokeStyle"] == "solid"
    assert element["simulatePressure"] is False


def test_pressure_sensitive_pens_clamp_pressure(converter):
    points = [point(0, 0, pressure=-0.5), point(1, 1, pressure=0.3), point(2, 2, pressure=4.0)]
    element = converter().convert(make_doc([stroke(pen=Pen.BALLPOINT, points=points)]))["elements"][0]
    assert element["pressures"] == [0.0, 0.3, 1.0]


def test_non_finite_points_dropped(converter):
    nan = float("nan")
    points = [point(nan, 0), point(10, 0), point(float("inf"), 3), point(12, 4, pressure=nan)]
    out = converter().convert(make_doc([stroke(width=nan, points=points)]))

    element = out["elements"][0]
    assert element["points"] == [[0, 0], [2, 4]]
    assert (element["x"], element["y"]) == (10, 0)
    assert element["pressures"] == [0.5, 0.5]
    assert element["strokeWidth"] == 1
    json.loads(dumps(out), parse_constant=pytest.fail)


def test_stroke_with_only_non_finite_points_skipped(converter):
    nan = float("nan")
    out = converter().convert(make_doc([stroke(points=[point(nan, nan)]), stroke()]))
    assert len(out["elements"]) == 1


def test_dumps_rejects_non_finite_numbers():
    with pytest.raises(ValueError):
        dumps({"x": float("nan")})


def test_empty_strokes_skipped(converter):
    out = converter().convert(make_doc([stroke(points=[]), stroke()]))
    assert len(out["elements"]) == 1


def test_erasers_dropped_by_default(converter):
    doc = make_doc([stroke(pen=Pen.ERASER), stroke(pen=Pen.ERASER_AREA)])
    assert converter().convert(doc)["elements"] == []


def test_erasers_kept_when_requested(converter):
    doc = make_doc([stroke(pen=Pen.ERASER), stroke(pen=Pen.ERASER_AREA)])
    assert len(converter(include_eraser=True).convert(doc)["elements"]) == 2


def test_layers_share_group_ids(converter):
    doc = make_doc([stroke(), stroke()], [stroke()], [])
    elements = converter().convert(doc)["elements"]
    groups = [e["groupIds"] for e in elements]
    assert groups[0] == groups[1]
    assert len(groups[0]) == 1
    assert groups[2] != groups[0]
    assert len(groups[2]) == 1


def test_group_ids_off(converter):
    doc = make_doc([stroke()], [stroke()])
    elements = converter(preserve_layers=False).convert(doc)["elements"]
    assert [e["groupIds"] for e in elements] == [[], []]


def test_group_ids_not_reused_across_calls(converter):
    conv = converter()
    doc = make_doc([stroke()])
    first = conv.convert(doc)["elements"][0]["groupIds"]
    second = conv.convert(doc)["elements"][0]["groupIds"]
    assert first != second


def test_unique_ids_and_seeds(converter):
    elements = converter().convert(make_doc([stroke(), stroke(), stroke()]))["elements"]
    assert len({e["id"] for e in elements}) == 3
    assert len({e["seed"] for e in elements}) == 3


def test_idempotent_with_deterministic_generators(clock):
    doc = make_doc([stroke(), stroke(pen=Pen.MARKER)], [stroke(color=PenColor.RED)])

    def run():
        ids = iter(range(100))
        seeds = iter(range(500, 600))
        return dumps(convert(
            doc,
            ConversionOptions(),
            id_factory=lambda: f"id-{next(ids)}",
            seed_factory=lambda: next(seeds),
            clock=clock,
        ))

    assert run() == run()


def test_does_not_mutate_document(converter):
    s = stroke(points=[point(3, 3), point(6, 9)])
    doc = make_doc([s])
    converter().convert(doc)
    assert [(p.x, p.y) for p in s.points] == [(3, 3), (6, 9)]


def test_background_image_first_and_locked(converter, clock):
    conv = converter()
    conv.set_background_image(b"\x89PNG\r\n\x1a\nrest", width=200, height=100)
    out = conv.convert(make_doc([stroke()]))

    image = out["elements"][0]
    assert image["type"] == "image"
    assert image["locked"] is True
    assert (image["x"], image["y"]) == (0, 0)
    assert (image["width"], image["height"]) == (200, 100)
    assert image["status"] == "saved"
    assert image["scale"] == [1, 1]
    assert image["strokeColor"] == "transparent"

    file_entry = out["files"][image["fileId"]]
    assert file_entry["id"] == image["fileId"]
    assert file_entry["mimeType"] == "image/png"
    assert file_entry["dataURL"].startswith("data:image/png;base64,")
    assert file_entry["created"] == clock()
    assert out["elements"][1]["type"] == "freedraw"


def test_background_with_only_erasers(converter):
    conv = converter()
    conv.set_background_image(b"\xff\xd8\xff\xe0", width=10, height=10)
    out = conv.convert(make_doc([stroke(pen=Pen.ERASER)]))
    assert [e["type"] for e in out["elements"]] == ["image"]
    assert list(out["files"].values())[0]["mimeType"] == "image/jpeg"


def test_background_dimensions_read_from_image():
    pix = fitz.Pixmap(fitz.csRGB, fitz.IRect(0, 0, 24, 16), False)
    pix.clear_with(255)
    image = BackgroundImage.from_bytes(pix.tobytes("png"))
    assert (image.width, image.height) == (24, 16)
    assert image.mime_type == "image/png"


@pytest.mark.parametrize("data,expected", [
    (b"\x89PNG\r\n\x1a\n....", "image/png"),
    (b"\xff\xd8\xff\xdb", "image/jpeg"),
    (b"GIF89a...", "image/gif"),
    (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
    (b"??", "image/png"),
])
def test_sniff_mime_type(data, expected):
    assert sniff_mime_type(data) == expected


def test_write_excalidraw(tmp_path, converter):
    path = tmp_path / "page.excalidraw"
    out = converter().convert(make_doc([stroke()]))
    write_excalidraw(out, path)
    assert json.loads(path.read_text(encoding="utf-8")) == out
