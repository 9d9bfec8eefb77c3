"""podpipe - pipe local processes into commands running in remote containers."""

__version__ = "0.1.0"
