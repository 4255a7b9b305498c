"""Digit templates and pixel-diff classification."""

import pytest
from PIL import Image

from adapters.keypad import DigitTemplateLibrary, PixelDiffClassifier, decode_keypad_image, pixel_diff_percent
from core.domain.errors import ClassificationError, ConfigurationError
from core.domain.keypad import KeypadLayout

from conftest import SCENARIO_ORDER, make_glyph, render_keypad, to_png


class TestPixelDiff:
    def test_identical_images_do_not_differ(self):
        glyph = make_glyph(3)
        assert pixel_diff_percent(glyph, glyph.copy()) == 0.0

    def test_inverted_image_differs_everywhere(self):
        white = Image.new("RGBA", (4, 4), (255, 255, 255, 255))
        black = Image.new("RGBA", (4, 4), (0, 0, 0, 255))
        assert pixel_diff_percent(white, black) == 1.0

    def test_differences_below_threshold_are_ignored(self):
        a = Image.new("RGBA", (2, 2), (100, 100, 100, 255))
        b = Image.new("RGBA", (2, 2), (120, 100, 100, 255))
        assert pixel_diff_percent(a, b, threshold=0.1) == 0.0
        assert pixel_diff_percent(a, b, threshold=0.05) == 1.0

    def test_size_mismatch_is_rejected(self):
        with pytest.raises(ValueError):
            pixel_diff_percent(Image.new("RGBA", (2, 2)), Image.new("RGBA", (3, 2)))


class TestDigitTemplateLibrary:
    def test_requires_exactly_ten_digits(self, templates):
        partial = {d: templates[d] for d in range(9)}
        with pytest.raises(ConfigurationError):
            DigitTemplateLibrary(partial)

    def test_templates_are_normalized_to_cell_size(self, templates):
        resized = {d: img.resize((45, 44)) for d, img in templates.items()}
        library = DigitTemplateLibrary(resized)
        assert library.glyph(4).size == (90, 88)

    def test_loads_from_directory(self, tmp_path, templates):
        for digit, img in templates.items():
            img.save(tmp_path / f"{digit}.png")
        library = DigitTemplateLibrary.from_directory(tmp_path)
        assert len(library) == 10
        assert pixel_diff_percent(library.glyph(6), templates[6]) == 0.0

    def test_missing_file_is_a_configuration_error(self, tmp_path, templates):
        for digit, img in templates.items():
            if digit != 5:
                img.save(tmp_path / f"{digit}.png")
        with pytest.raises(ConfigurationError, match="digit 5"):
            DigitTemplateLibrary.from_directory(tmp_path)

    def test_missing_directory_is_a_configuration_error(self, tmp_path):
        with pytest.raises(ConfigurationError):
            DigitTemplateLibrary.from_directory(tmp_path / "nope")


class TestPixelDiffClassifier:
    @pytest.mark.parametrize("shift", range(10))
    def test_every_template_is_recognized_in_every_cell(self, classifier, shift):
        order = tuple((cell + shift) % 10 for cell in range(10))
        keypad = classifier.classify(render_keypad(order), KeypadLayout())
        assert keypad.digits == order

    def test_permuted_keypad_is_a_bijection(self, classifier):
        keypad = classifier.classify(render_keypad(SCENARIO_ORDER), KeypadLayout())
        assert keypad.digits == SCENARIO_ORDER
        assert sorted(keypad.digits) == list(range(10))
        assert len(keypad.scores) == 10

    def test_scaled_keypad_is_resized_before_matching(self, classifier):
        image = render_keypad(SCENARIO_ORDER, multiplier=2)
        keypad = classifier.classify(image, KeypadLayout(size_multiplier=2))
        assert keypad.digits == SCENARIO_ORDER

    def test_full_declared_canvas_is_classified(self, classifier):
        # 3800x1520 is not an exact multiple of 484x190; the grid that fits is x7
        image = render_keypad(SCENARIO_ORDER, multiplier=7, canvas_size=(3800, 1520))
        layout = KeypadLayout.for_image_size(*image.size)
        keypad = classifier.classify(image, layout)
        assert layout.size_multiplier == 7
        assert keypad.digits == SCENARIO_ORDER

    def test_duplicated_glyph_is_a_classification_error(self, classifier):
        image = render_keypad(SCENARIO_ORDER)
        layout = KeypadLayout()
        # cell 1 now shows the same glyph as cell 0
        image.paste(make_glyph(SCENARIO_ORDER[0]), (layout.cell(1).x, layout.cell(1).y))
        with pytest.raises(ClassificationError, match="bijection"):
            classifier.classify(image, layout)

    def test_image_smaller_than_layout_is_a_classification_error(self, classifier):
        with pytest.raises(ClassificationError):
            classifier.classify(render_keypad(SCENARIO_ORDER), KeypadLayout(size_multiplier=2))

    def test_ties_go_to_the_lowest_digit(self, templates):
        twins = dict(templates)
        twins[5] = templates[3].copy()
        classifier = PixelDiffClassifier(DigitTemplateLibrary(twins))
        digit, score = classifier.best_match(templates[3])
        assert (digit, score) == (3, 0.0)


class TestDecodeKeypadImage:
    def test_decodes_png_bytes(self):
        image = decode_keypad_image(to_png(render_keypad(SCENARIO_ORDER)))
        assert image.size == (484, 190)
        assert image.mode == "RGBA"

    def test_garbage_is_a_classification_error(self):
        with pytest.raises(ClassificationError):
            decode_keypad_image(b"definitely not a png")
