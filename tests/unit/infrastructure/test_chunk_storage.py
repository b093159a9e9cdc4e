"""
Testes do LocalChunkStorage.
"""
import pytest

from lockin.domain.exceptions import StorageError
from lockin.infrastructure.storage import LocalChunkStorage


@pytest.fixture
def storage(tmp_path):
    return LocalChunkStorage(tmp_path / "chunks")


class TestLocalChunkStorage:
    """Testes de gravação, leitura e remoção de chunks."""
    
    @pytest.mark.asyncio
    async def test_save_and_read(self, storage):
        path = await storage.save_chunk("user-1", "job-1", 3, b"abc")
        
        assert path.name == "000003.part"
        assert await storage.read_chunk("user-1", "job-1", 3) == b"abc"
    
    @pytest.mark.asyncio
    async def test_overwrite_keeps_latest(self, storage):
        await storage.save_chunk("user-1", "job-1", 0, b"old")
        await storage.save_chunk("user-1", "job-1", 0, b"new")
        
        assert await storage.read_chunk("user-1", "job-1", 0) == b"new"
        assert not list(storage.job_dir("user-1", "job-1").glob("*.tmp"))
    
    @pytest.mark.asyncio
    async def test_missing_chunk_raises(self, storage):
        with pytest.raises(StorageError):
            await storage.read_chunk("user-1", "job-1", 0)
    
    @pytest.mark.asyncio
    async def test_remove_job(self, storage):
        await storage.save_chunk("user-1", "job-1", 0, b"abc")
        
        assert await storage.remove_job("user-1", "job-1") is True
        assert await storage.remove_job("user-1", "job-1") is False
        assert not storage.job_dir("user-1", "job-1").exists()
    
    @pytest.mark.parametrize("user_id,job_id", [
        ("..", "job-1"),
        ("user/1", "job-1"),
        ("user-1", "../escape"),
        ("", "job-1"),
    ])
    def test_rejects_unsafe_path_segments(self, storage, user_id, job_id):
        """Segmentos com separadores ou '..' não viram caminhos."""
        with pytest.raises(StorageError):
            storage.job_dir(user_id, job_id)
