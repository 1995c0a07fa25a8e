""" This file defines logger class. """
import logging

LOGGER_NAME = "torchfss"


class Logger():
    """Class of logging for global use.

    Handlers are attached to the ``torchfss`` package logger, so records
    emitted by any ``logging.getLogger(__name__)`` inside the package reach
    the console and, when ``file_path`` is given, the run log file.
    """

    def __init__(self,
                 log_level = logging.INFO,
                 flog_level = logging.DEBUG,
                 file_path = None):

        # Create a logger
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(min(log_level, flog_level) if file_path else log_level)

        # Drop handlers installed by an earlier instance
        for handler in list(self.logger.handlers):
            if getattr(handler, "_torchfss_handler", False):
                self.logger.removeHandler(handler)
                handler.close()

        # Create a logging format
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')

        # Create a stream handler
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(log_level)
        stream_handler.setFormatter(formatter)
        stream_handler._torchfss_handler = True

        # Add the stream handler to the logger
        self.logger.addHandler(stream_handler)

        # Create a file handler if needed
        if file_path is not None:
            file_handler = logging.FileHandler(file_path)
            file_handler.setLevel(flog_level)
            file_handler.setFormatter(formatter)
            file_handler._torchfss_handler = True

            # Add the file handler to the logger
            self.logger.addHandler(file_handler)

    def debug(self, message):
        """debug.
        writes debug message to log.

        Args:
            message:
        """
        self.logger.debug(message)

    def info(self, message):
        """info.
        writes info message to log.

        Args:
            message:
        """
        self.logger.info(message)

    def warning(self, message):
        """warning.
        writes warning message to log.

        Args:
            message:
        """
        self.logger.warning(message)

    def error(self, message):
        """error.
        writes error message to log.

        Args:
            message:
        """
        self.logger.error(message)

    def critical(self, message):
        """critical.
        writes critical message to log.

        Args:
            message:
        """
        self.logger.critical(message)

    def close(self):
        """Detach and close the handlers installed by this logger."""
        for handler in list(self.logger.handlers):
            if getattr(handler, "_torchfss_handler", False):
                self.logger.removeHandler(handler)
                handler.close()
