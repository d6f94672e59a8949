"""
Tests for the local filesystem driver.
"""

import io

import pytest

from f3.errors import (
    InvalidKey,
    ObjectNotFound,
    OperationNotEnabled,
    OverwriteForbidden,
)
from f3.features import FeatureFlags


class TestPaths:
    """Tests for resolving keys below the root."""
    
    def test_keys_resolve_below_root(self, fs_driver, fs_root):
        assert fs_driver.build_path("/a/b.txt") == fs_root.resolve() / "a" / "b.txt"
        assert fs_driver.build_path("") == fs_root.resolve()
    
    def test_escaping_the_root(self, fs_driver):
        """Test that parent references can not leave the root."""
        with pytest.raises(InvalidKey):
            fs_driver.build_path("../outside.txt")
        with pytest.raises(InvalidKey):
            fs_driver.stat("/a/../../outside.txt")


class TestReadOperations:
    """Tests for stat, list_dir and get_file."""
    
    def test_stat_file_and_dir(self, fs_driver, fs_root):
        (fs_root / "dir").mkdir()
        (fs_root / "dir" / "file.txt").write_bytes(b"hello")
        
        assert fs_driver.stat("dir").is_dir
        info = fs_driver.stat("dir/file.txt")
        assert info.size == 5
        assert not info.is_dir
    
    def test_stat_missing(self, fs_driver):
        with pytest.raises(ObjectNotFound):
            fs_driver.stat("missing")
    
    def test_list_dir(self, fs_driver, fs_root):
        (fs_root / "b.txt").write_bytes(b"bb")
        (fs_root / "a.txt").write_bytes(b"a")
        (fs_root / "sub").mkdir()
        seen = []
        
        fs_driver.list_dir("/", seen.append)
        
        assert [info.key for info in seen] == ["a.txt", "b.txt", "sub"]
        assert [info.is_dir for info in seen] == [False, False, True]
    
    def test_list_missing_dir(self, fs_driver):
        with pytest.raises(ObjectNotFound):
            fs_driver.list_dir("missing", lambda info: None)
    
    def test_get_file_with_offset(self, fs_driver, fs_root, metrics):
        (fs_root / "file.txt").write_bytes(b"hello world")
        
        size, stream = fs_driver.get_file("file.txt", offset=6)
        with stream:
            assert stream.read() == b"world"
        
        assert size == 11
        assert metrics.send_get.call_args.args[0] == 5
    
    def test_get_directory(self, fs_driver, fs_root):
        (fs_root / "dir").mkdir()
        with pytest.raises(ObjectNotFound):
            fs_driver.get_file("dir")


class TestWriteOperations:
    """Tests for the mutating operations."""
    
    def test_put_file_creates_parents(self, fs_driver, fs_root, metrics):
        written = fs_driver.put_file("/new/dir/file.txt", io.BytesIO(b"payload"))
        
        assert written == 7
        assert (fs_root / "new" / "dir" / "file.txt").read_bytes() == b"payload"
        assert metrics.send_put.call_args.args[0] == 7
    
    def test_append(self, fs_driver, fs_root):
        """Test that the filesystem driver supports appending."""
        (fs_root / "log.txt").write_bytes(b"one,")
        fs_driver.put_file("log.txt", io.BytesIO(b"two"), append=True)
        assert fs_driver.supports_append
        assert (fs_root / "log.txt").read_bytes() == b"one,two"
    
    def test_no_overwrite(self, make_fs_driver, fs_root, metrics):
        driver = make_fs_driver(no_overwrite=True)
        (fs_root / "file.txt").write_bytes(b"old")
        
        with pytest.raises(OverwriteForbidden):
            driver.put_file("file.txt", io.BytesIO(b"new"))
        with pytest.raises(OverwriteForbidden):
            driver.put_file("file.txt", io.BytesIO(b"new"), append=True)
        
        assert (fs_root / "file.txt").read_bytes() == b"old"
        metrics.send_put.assert_not_called()
    
    def test_put_over_directory(self, fs_driver, fs_root):
        (fs_root / "dir").mkdir()
        with pytest.raises(OverwriteForbidden):
            fs_driver.put_file("dir", io.BytesIO(b"x"))
    
    def test_make_change_and_delete_dir(self, fs_driver, fs_root):
        fs_driver.make_dir("a/b")
        assert (fs_root / "a" / "b").is_dir()
        
        fs_driver.change_dir("a/b")
        with pytest.raises(ObjectNotFound):
            fs_driver.change_dir("nope")
        
        fs_driver.delete_dir("a")
        assert not (fs_root / "a").exists()
    
    def test_root_can_not_be_deleted(self, fs_driver):
        with pytest.raises(InvalidKey):
            fs_driver.delete_dir("/")
    
    def test_delete_file(self, fs_driver, fs_root):
        (fs_root / "file.txt").write_bytes(b"x")
        fs_driver.delete_file("file.txt")
        assert not (fs_root / "file.txt").exists()
        with pytest.raises(ObjectNotFound):
            fs_driver.delete_file("file.txt")
    
    def test_rename(self, fs_driver, fs_root):
        (fs_root / "old.txt").write_bytes(b"x")
        fs_driver.rename("old.txt", "new.txt")
        assert (fs_root / "new.txt").read_bytes() == b"x"
        with pytest.raises(ObjectNotFound):
            fs_driver.rename("old.txt", "other.txt")
    
    def test_rename_no_overwrite(self, make_fs_driver, fs_root):
        driver = make_fs_driver(no_overwrite=True)
        (fs_root / "a.txt").write_bytes(b"a")
        (fs_root / "b.txt").write_bytes(b"b")
        with pytest.raises(OverwriteForbidden):
            driver.rename("a.txt", "b.txt")
        assert (fs_root / "b.txt").read_bytes() == b"b"


class TestFeatureGate:
    def test_disabled_operations(self, make_fs_driver, fs_root):
        """Test that disabled operations leave the directory untouched."""
        driver = make_fs_driver(features=FeatureFlags())
        (fs_root / "file.txt").write_bytes(b"x")
        
        with pytest.raises(OperationNotEnabled):
            driver.delete_file("file.txt")
        with pytest.raises(OperationNotEnabled):
            driver.make_dir("dir")
        with pytest.raises(OperationNotEnabled):
            driver.put_file("other.txt", io.BytesIO(b"x"))
        
        assert sorted(p.name for p in fs_root.iterdir()) == ["file.txt"]
    
    def test_check_bucket(self, fs_driver, fs_root):
        fs_driver.check_bucket()
