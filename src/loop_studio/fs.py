#!/usr/bin/env python
import logging
from pathlib import Path
from typing import List, Optional, Union

AUDIO_EXTENSIONS = ("wav", "flac", "ogg", "mp3", "aiff")


class FS:
    """
    Manages the data directory layout used by the application.
    """
    def __init__(self, data_folder: Optional[Union[str, Path]] = None) -> None:
        self.root: Path = self.get_project_root()
        self.data_folder: Path = Path(data_folder) if data_folder is not None else self.root / "data"
        self.logs_folder: Path = self.data_folder / "logs"
        self.sound_folder: Path = self.data_folder / "sound"
        self.sound_input_folder: Path = self.sound_folder / "input"
        self.sound_output_folder: Path = self.sound_folder / "output"
        self.create_directories()

    def get_project_root(self) -> Path:
        """
        Determines the project root directory.

        Returns:
            Path object pointing to the project root
        """
        # This file lives in src/loop_studio/; the project root is two levels up.
        return Path(__file__).resolve().parent.parent.parent

    def create_directories(self) -> None:
        """
        Creates all necessary directories for the application if they don't exist.
        """
        for folder in [
            self.data_folder,
            self.logs_folder,
            self.sound_folder,
            self.sound_input_folder,
            self.sound_output_folder,
        ]:
            folder.mkdir(parents=True, exist_ok=True)
            logging.debug(f"Ensured directory exists: {folder}")

    def resolve_input(self, name: Union[str, Path]) -> Path:
        """
        Resolve an audio file argument: existing paths are used as given,
        bare names are looked up in the input folder.
        """
        path = Path(name)
        if path.exists() or path.is_absolute():
            return path
        return self.sound_input_folder / path

    def get_sound_input_files(self, extensions=AUDIO_EXTENSIONS) -> List[Path]:
        """
        Lists audio files in the input folder, sorted by name.

        Args:
            extensions: File extensions to include (without the dot)
        """
        files: List[Path] = []
        for extension in extensions:
            files.extend(self.sound_input_folder.glob(f"*.{extension}"))
        return sorted(files)

    def output_path(self, name: str) -> Path:
        return self.sound_output_folder / name
