"""configkeeper: configuration documents stored in a remote git repository."""

__version__ = "0.1.0"
