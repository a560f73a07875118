import pytest

from fabquote.backoffice.services.format_guard import (
    CadFormat,
    FormatGuard,
    classify,
    file_extension,
    file_name,
    mesh_content_type,
    needs_conversion,
    sanitize_filename,
)
from fabquote.exceptions.handlers import FileTooLargeError


@pytest.mark.parametrize(
    "name,expected",
    [
        ("bracket.STEP", CadFormat.BREP),
        ("parts/p1/source/v2/housing.stp", CadFormat.BREP),
        ("http://minio:9000/bucket/parts/p1/source/flange.igs?X-Amz-Signature=abc", CadFormat.BREP),
        ("printed.stl", CadFormat.MESH),
        ("scene.glb", CadFormat.MESH),
        ("drawing.pdf", CadFormat.OTHER),
        ("README", CadFormat.OTHER),
        (None, CadFormat.OTHER),
    ],
)
def test_classify(name, expected):
    assert classify(name) is expected


def test_only_brep_needs_conversion():
    assert needs_conversion(CadFormat.BREP) is True
    assert needs_conversion(CadFormat.MESH) is False
    assert needs_conversion(CadFormat.OTHER) is False


def test_file_extension_ignores_dots_in_directories():
    assert file_extension("parts/v1.2/model") == ""
    assert file_extension("a/b/c.X_T") == "x_t"


def test_file_name_falls_back_to_default():
    assert file_name("parts/p1/mesh/result.glb") == "result.glb"
    assert file_name("", default="cad-file") == "cad-file"
    assert file_name("https://cdn.test/parts/p1/source/a.step?sig=1") == "a.step"


def test_sanitize_filename():
    assert sanitize_filename(" my part (rev B).glb ") == "my-part-rev-B.glb"
    assert sanitize_filename("???") == "file"


def test_mesh_content_type():
    assert mesh_content_type("x.glb") == "model/gltf-binary"
    assert mesh_content_type("x.bin") == "application/octet-stream"


def test_validate_size_boundary():
    guard = FormatGuard(max_file_size_bytes=1024 * 1024)
    guard.validate_size(1024 * 1024)

    with pytest.raises(FileTooLargeError) as excinfo:
        guard.validate_size(1024 * 1024 + 1)
    assert excinfo.value.message == "File size exceeds maximum of 1MB"
    assert excinfo.value.details["size_bytes"] == 1024 * 1024 + 1


def test_recommended_output_format_reads_provider_each_call():
    current = {"fmt": "OBJ"}
    guard = FormatGuard(max_file_size_bytes=10, output_format_provider=lambda: current["fmt"])
    assert guard.recommended_output_format() == "obj"

    current["fmt"] = "fbx"
    assert guard.recommended_output_format() == "glb"
