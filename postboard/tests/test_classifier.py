import io
import unittest
from unittest.mock import MagicMock

from postboard.classifier import AttachmentClassifier
from postboard.errors import AttachmentIOError, AttachmentTooLarge, UnsupportedFormat
from postboard.tests.images import TEXT_BYTES, jpeg_bytes, png_bytes


class UnseekableStream(io.BytesIO):
    def seek(self, *args, **kwargs):
        raise OSError("stream is not seekable")


class AttachmentClassifierTests(unittest.TestCase):
    def setUp(self):
        self.classifier = AttachmentClassifier(max_bytes=2 * 1024 * 1024)

    def test_classifies_png(self):
        fmt = self.classifier.classify(io.BytesIO(png_bytes()))
        self.assertEqual(fmt.tag, "PNG")
        self.assertEqual(fmt.extension, "png")
        self.assertEqual(fmt.content_type, "image/png")

    def test_classifies_jpeg(self):
        fmt = self.classifier.classify(io.BytesIO(jpeg_bytes()))
        self.assertEqual(fmt.tag, "JPEG")
        self.assertEqual(fmt.extension, "jpeg")

    def test_stream_is_rewound_and_unchanged(self):
        data = jpeg_bytes()
        stream = io.BytesIO(data)
        self.classifier.classify(stream, declared_size=len(data))
        self.assertEqual(stream.tell(), 0)
        self.assertEqual(stream.read(), data)

    def test_classifying_twice_gives_same_format(self):
        stream = io.BytesIO(png_bytes())
        first = self.classifier.classify(stream)
        second = self.classifier.classify(stream)
        self.assertEqual(first, second)

    def test_text_is_unsupported(self):
        stream = io.BytesIO(TEXT_BYTES)
        with self.assertRaises(UnsupportedFormat):
            self.classifier.classify(stream)
        self.assertEqual(stream.tell(), 0)

    def test_truncated_headers_are_unsupported(self):
        cases = {
            "jpeg": jpeg_bytes()[:40],
            "png": png_bytes()[:20],
            "webp": b"RIFF\0\0\0\0WEBPVP8 ",
            "empty": b"",
        }
        for label, data in cases.items():
            with self.subTest(label=label):
                stream = io.BytesIO(data)
                with self.assertRaises(UnsupportedFormat):
                    self.classifier.classify(stream, declared_size=len(data))
                self.assertEqual(stream.tell(), 0)
                self.assertEqual(stream.read(), data)

    def test_unsupported_message_does_not_leak_stream_repr(self):
        with self.assertRaises(UnsupportedFormat) as ctx:
            self.classifier.classify(io.BytesIO(TEXT_BYTES))
        self.assertEqual(ctx.exception.message, "DecodeConfig error, unrecognized image format")
        self.assertNotIn("0x", ctx.exception.message)
        self.assertIsNotNone(ctx.exception.__cause__)

    def test_declared_size_over_limit_never_touches_stream(self):
        stream = MagicMock()
        with self.assertRaises(AttachmentTooLarge):
            self.classifier.classify(stream, declared_size=2 * 1024 * 1024 + 1)
        stream.read.assert_not_called()
        stream.seek.assert_not_called()

    def test_size_at_limit_is_accepted(self):
        data = png_bytes()
        classifier = AttachmentClassifier(max_bytes=len(data))
        self.assertEqual(classifier.classify(io.BytesIO(data)).tag, "PNG")

    def test_measures_size_when_not_declared(self):
        data = png_bytes()
        classifier = AttachmentClassifier(max_bytes=len(data) - 1)
        stream = io.BytesIO(data)
        with self.assertRaises(AttachmentTooLarge):
            classifier.classify(stream)
        self.assertEqual(stream.tell(), 0)

    def test_unseekable_stream_is_io_error(self):
        with self.assertRaises(AttachmentIOError):
            self.classifier.classify(UnseekableStream(png_bytes()), declared_size=10)

    def test_restricted_formats(self):
        classifier = AttachmentClassifier(formats=["PNG"])
        self.assertEqual(classifier.classify(io.BytesIO(png_bytes())).tag, "PNG")
        with self.assertRaises(UnsupportedFormat):
            classifier.classify(io.BytesIO(jpeg_bytes()))

    def test_unknown_format_in_config(self):
        with self.assertRaises(ValueError):
            AttachmentClassifier(formats=["BMP"])


if __name__ == "__main__":
    unittest.main()
