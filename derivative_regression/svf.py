"""
视图产物读取模块

读取提取到本地的SVF视图：场景包（zip，内含manifest.json）、
片段列表和几何元数据（二进制pack文件）、材质（gzip压缩JSON）以及纹理列表

Pack文件结构:
- 可选的gzip压缩外层
- Header: 类型字符串（varint长度 + utf-8） + version (int32)
- Entries: 每个entry以类型索引 (uint32) 开头
- 文件末尾8字节: entries表偏移 (uint32) + types表偏移 (uint32)
- entries表: 数量 (varint) + 每个entry的偏移 (uint32)
- types表: 数量 (varint) + (class字符串, type字符串, version (varint))
"""

import gzip
import json
import struct
import zipfile
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .errors import TransportError


EMBED_PREFIX = "embed:/"

ASSET_TYPE_IMAGE = "Autodesk.CloudPlatform.Image"
ASSET_TYPE_MATERIALS = "ProteinMaterials"
ASSET_TYPE_PACKFILE = "Autodesk.CloudPlatform.PackFile"

FRAGMENTS_URI = "FragmentList.pack"
GEOMETRIES_URI = "GeometryMetadata.pf"
MATERIALS_URI = "Materials.json.gz"

ENTRY_CLASS_FRAGMENT = "Autodesk.CloudPlatform.FragmentList"
ENTRY_CLASS_GEOMETRY = "Autodesk.CloudPlatform.GeometryMetadataList"


def load_gzip_json(path: Union[str, Path]) -> Any:
    """
    读取gzip压缩的JSON文件

    Raises:
        TransportError: 文件不存在或无法解码
    """
    try:
        with gzip.open(path, "rt", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, EOFError, ValueError, zlib.error) as e:
        raise TransportError(f"无法解码 {path}: {e}") from e


def decode_json_payload(data: bytes, name: str) -> Any:
    """解码JSON数据，自动处理gzip压缩"""
    try:
        if data[:2] == b"\x1f\x8b":
            data = gzip.decompress(data)
        return json.loads(data.decode("utf-8"))
    except (OSError, EOFError, ValueError, zlib.error) as e:
        raise TransportError(f"无法解码 {name}: {e}") from e


@dataclass
class PackEntryType:
    """Pack文件条目类型"""
    class_name: str
    type_name: str
    version: int


@dataclass
class SceneFragment:
    """场景片段，标识由instance_id、geometry_id、material_id决定"""
    instance_id: int
    geometry_id: int
    material_id: int
    visible: bool = True
    transform: Optional[Dict[str, Any]] = None
    bbox: List[float] = field(default_factory=list)


class PackFileReader:
    """Pack文件读取器"""

    def __init__(self, data: bytes, name: str = "<pack>"):
        self.name = name
        try:
            if data[:2] == b"\x1f\x8b":
                data = gzip.decompress(data)
        except (OSError, EOFError, zlib.error) as e:
            raise TransportError(f"无法解压 {name}: {e}") from e

        self.data = data
        self.offset = 0
        self.entries: List[int] = []
        self.types: List[PackEntryType] = []

        try:
            self.pack_type = self.get_string(self.get_varint())
            self.version = self.get_int32()
            self._parse_contents()
        except (struct.error, UnicodeDecodeError, IndexError) as e:
            raise TransportError(f"无效的pack文件 {name}: {e}") from e

    def _parse_contents(self):
        """解析文件末尾的entries表和types表"""
        start = self.offset

        self.seek(len(self.data) - 8)
        entries_offset = self.get_uint32()
        types_offset = self.get_uint32()

        self.seek(entries_offset)
        for _ in range(self.get_varint()):
            self.entries.append(self.get_uint32())

        self.seek(types_offset)
        for _ in range(self.get_varint()):
            class_name = self.get_string(self.get_varint())
            type_name = self.get_string(self.get_varint())
            self.types.append(PackEntryType(class_name, type_name, self.get_varint()))

        self.seek(start)

    def num_entries(self) -> int:
        return len(self.entries)

    def seek(self, offset: int):
        if offset < 0 or offset > len(self.data):
            raise IndexError(f"偏移越界: {offset}")
        self.offset = offset

    def seek_entry(self, index: int) -> PackEntryType:
        """定位到第index个条目，返回其类型"""
        self.seek(self.entries[index])
        return self.types[self.get_uint32()]

    def _unpack(self, fmt: str, size: int):
        value = struct.unpack_from(fmt, self.data, self.offset)[0]
        self.offset += size
        return value

    def get_uint8(self) -> int:
        return self._unpack("<B", 1)

    def get_uint16(self) -> int:
        return self._unpack("<H", 2)

    def get_int32(self) -> int:
        return self._unpack("<i", 4)

    def get_uint32(self) -> int:
        return self._unpack("<I", 4)

    def get_float32(self) -> float:
        return self._unpack("<f", 4)

    def get_float64(self) -> float:
        return self._unpack("<d", 8)

    def get_varint(self) -> int:
        """读取无符号LEB128变长整数"""
        value = 0
        shift = 0
        while True:
            byte = self.data[self.offset]
            self.offset += 1
            value |= (byte & 0x7F) << shift
            if byte & 0x80 == 0:
                return value
            shift += 7

    def get_string(self, length: int) -> str:
        if self.offset + length > len(self.data):
            raise IndexError(f"字符串越界: {self.offset}+{length}")
        value = self.data[self.offset:self.offset + length].decode("utf-8")
        self.offset += length
        return value

    def get_vector3(self) -> Dict[str, float]:
        return {"x": self.get_float64(), "y": self.get_float64(), "z": self.get_float64()}

    def get_quaternion(self) -> Dict[str, float]:
        return {
            "x": self.get_float32(),
            "y": self.get_float32(),
            "z": self.get_float32(),
            "w": self.get_float32()
        }

    def get_transform(self) -> Optional[Dict[str, Any]]:
        """
        读取变换

        类型: 0 平移; 1 旋转+平移; 2 均匀缩放+旋转+平移; 3 仿射矩阵+平移
        """
        xform_type = self.get_uint8()

        if xform_type == 0:
            return {"t": self.get_vector3()}
        if xform_type == 1:
            q = self.get_quaternion()
            t = self.get_vector3()
            return {"q": q, "t": t, "s": {"x": 1.0, "y": 1.0, "z": 1.0}}
        if xform_type == 2:
            scale = self.get_float32()
            q = self.get_quaternion()
            t = self.get_vector3()
            return {"q": q, "t": t, "s": {"x": scale, "y": scale, "z": scale}}
        if xform_type == 3:
            matrix = [self.get_float32() for _ in range(9)]
            t = self.get_vector3()
            return {"matrix": matrix, "t": t}
        return None


def parse_fragments(data: bytes, name: str = "FragmentList.pack") -> List[SceneFragment]:
    """解析片段列表pack文件"""
    reader = PackFileReader(data, name)
    fragments = []

    try:
        for i in range(reader.num_entries()):
            entry_type = reader.seek_entry(i)
            if entry_type.class_name != ENTRY_CLASS_FRAGMENT:
                raise TransportError(f"{name} 条目 {i} 类型错误: {entry_type.class_name}")

            flags = reader.get_uint8()
            material_id = reader.get_varint()
            geometry_id = reader.get_varint()
            transform = reader.get_transform()

            offset = [0.0, 0.0, 0.0]
            if entry_type.version > 3 and transform and "t" in transform:
                t = transform["t"]
                offset = [t["x"], t["y"], t["z"]]
            bbox = [reader.get_float32() + offset[j % 3] for j in range(6)]

            instance_id = reader.get_varint()
            fragments.append(SceneFragment(
                instance_id=instance_id,
                geometry_id=geometry_id,
                material_id=material_id,
                visible=(flags & 0x01) != 0,
                transform=transform,
                bbox=bbox
            ))
    except (struct.error, IndexError) as e:
        raise TransportError(f"无效的片段数据 {name}: {e}") from e

    return fragments


def parse_geometries(data: bytes, name: str = "GeometryMetadata.pf") -> List[Dict[str, Any]]:
    """解析几何元数据pack文件"""
    reader = PackFileReader(data, name)
    geometries = []

    try:
        for i in range(reader.num_entries()):
            entry_type = reader.seek_entry(i)
            if entry_type.class_name != ENTRY_CLASS_GEOMETRY:
                raise TransportError(f"{name} 条目 {i} 类型错误: {entry_type.class_name}")

            frag_type = reader.get_uint8()
            # 跳过3个字节
            reader.seek(reader.offset + 3)
            prim_count = reader.get_uint16()
            pack_id = int(reader.get_string(reader.get_varint()))
            entity_id = reader.get_varint()
            geometries.append({
                "fragType": frag_type,
                "primCount": prim_count,
                "packID": pack_id,
                "entityID": entity_id
            })
    except (struct.error, IndexError, ValueError) as e:
        raise TransportError(f"无效的几何元数据 {name}: {e}") from e

    return geometries


class SvfReader:
    """SVF视图读取器"""

    def __init__(self, viewable_dir: Union[str, Path], package_name: str = "output.svf"):
        """
        初始化读取器

        Args:
            viewable_dir: 视图目录（包含场景包及其引用的资源文件）
            package_name: 场景包文件名
        """
        self.viewable_dir = Path(viewable_dir)
        self.package_path = self.viewable_dir / package_name
        self._manifest: Optional[Dict[str, Any]] = None

    def _read_package_entry(self, name: str) -> bytes:
        try:
            with zipfile.ZipFile(self.package_path) as package:
                return package.read(name)
        except (OSError, KeyError, zipfile.BadZipFile) as e:
            raise TransportError(f"无法读取场景包 {self.package_path} 中的 {name}: {e}") from e

    def read_manifest(self) -> Dict[str, Any]:
        """读取场景包中的manifest.json"""
        if self._manifest is None:
            manifest = decode_json_payload(self._read_package_entry("manifest.json"), "manifest.json")
            if not isinstance(manifest, dict):
                raise TransportError(f"无效的manifest: {self.package_path}")
            self._manifest = manifest
        return self._manifest

    def list_assets(self, asset_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """列出manifest中的资源，可按类型过滤"""
        assets = self.read_manifest().get("assets", [])
        if asset_type is None:
            return list(assets)
        return [asset for asset in assets if asset.get("type") == asset_type]

    def get_asset(self, uri: str) -> bytes:
        """读取资源数据，embed:/ 开头的资源从场景包中读取"""
        if uri.startswith(EMBED_PREFIX):
            return self._read_package_entry(uri[len(EMBED_PREFIX):])

        asset_path = self.viewable_dir / uri
        try:
            return asset_path.read_bytes()
        except OSError as e:
            raise TransportError(f"无法读取资源 {asset_path}: {e}") from e

    def _find_asset_uri(self, asset_type: str, suffix: str) -> Optional[str]:
        for asset in self.list_assets(asset_type):
            if asset.get("URI", "").endswith(suffix):
                return asset["URI"]
        return None

    def list_images(self) -> List[str]:
        """列出视图引用的所有图像URI"""
        return [asset["URI"] for asset in self.list_assets(ASSET_TYPE_IMAGE)]

    def read_fragments(self) -> List[SceneFragment]:
        """读取场景片段"""
        uri = self._find_asset_uri(ASSET_TYPE_PACKFILE, FRAGMENTS_URI)
        if uri is None:
            return []
        return parse_fragments(self.get_asset(uri), uri)

    def read_geometries(self) -> List[Dict[str, Any]]:
        """读取几何元数据"""
        uri = self._find_asset_uri(ASSET_TYPE_PACKFILE, GEOMETRIES_URI)
        if uri is None:
            return []
        return parse_geometries(self.get_asset(uri), uri)

    def read_materials(self) -> List[Any]:
        """读取材质列表（按文档中的顺序）"""
        uri = self._find_asset_uri(ASSET_TYPE_MATERIALS, MATERIALS_URI)
        if uri is None:
            return []

        data = decode_json_payload(self.get_asset(uri), uri)
        materials = data.get("materials", {}) if isinstance(data, dict) else None
        if not isinstance(materials, dict):
            raise TransportError(f"无效的材质文件: {uri}")
        return list(materials.values())

