"""
Chunk Storage - Armazenamento local dos bytes de cada chunk enviado.

Layout: {base_dir}/{user_id}/{job_id}/{chunk_index:06d}.part
"""
import asyncio
import re
import shutil
from pathlib import Path
from typing import Union

from loguru import logger

from lockin.domain.exceptions import StorageError

_SAFE_SEGMENT = re.compile(r"^[A-Za-z0-9_.-]+$")


def _safe_segment(value: str, name: str) -> str:
    value = str(value)
    if not _SAFE_SEGMENT.match(value) or value in (".", ".."):
        raise StorageError(f"Invalid {name} for storage path: {value!r}")
    return value


class LocalChunkStorage:
    """Armazena chunks em disco, um arquivo por índice."""
    
    def __init__(self, base_dir: Union[str, Path] = "./temp/transcripts"):
        """
        Inicializa o storage.
        
        Args:
            base_dir: Diretório base dos chunks
        """
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Chunk storage initialized: {self.base_dir}")
    
    def job_dir(self, user_id: str, job_id: str) -> Path:
        """Diretório dos chunks de um job."""
        return self.base_dir / _safe_segment(user_id, "user_id") / _safe_segment(job_id, "job_id")
    
    def chunk_path(self, user_id: str, job_id: str, chunk_index: int) -> Path:
        """Caminho do arquivo de um chunk."""
        return self.job_dir(user_id, job_id) / f"{int(chunk_index):06d}.part"
    
    async def save_chunk(self, user_id: str, job_id: str, chunk_index: int, data: bytes) -> Path:
        """
        Grava chunk em disco (escrita atômica via arquivo temporário).
        
        Raises:
            StorageError: Se não conseguir gravar
        """
        path = self.chunk_path(user_id, job_id, chunk_index)
        
        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_suffix(".tmp")
            tmp_path.write_bytes(data)
            tmp_path.replace(path)
        
        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            logger.error(f"Failed to store chunk {chunk_index} of job {job_id}: {e}")
            raise StorageError(f"Failed to store chunk {chunk_index}: {e}") from e
        
        logger.debug(f"Stored chunk {chunk_index} of job {job_id} ({len(data)} bytes)")
        return path
    
    async def read_chunk(self, user_id: str, job_id: str, chunk_index: int) -> bytes:
        """
        Lê bytes de um chunk.
        
        Raises:
            StorageError: Se o chunk não existir ou não puder ser lido
        """
        path = self.chunk_path(user_id, job_id, chunk_index)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except OSError as e:
            raise StorageError(f"Failed to read chunk {chunk_index} of job {job_id}: {e}") from e
    
    async def remove_job(self, user_id: str, job_id: str) -> bool:
        """
        Remove todos os chunks de um job.
        
        Returns:
            bool: True se algo foi removido
        """
        directory = self.job_dir(user_id, job_id)
        if not directory.exists():
            return False
        
        try:
            await asyncio.to_thread(shutil.rmtree, directory)
        except OSError as e:
            logger.warning(f"Failed to remove chunks of job {job_id}: {e}")
            return False
        
        logger.debug(f"Removed chunk directory: {directory}")
        return True
