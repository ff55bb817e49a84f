import socket

def get_local_ip(probe_host: str = "8.8.8.8") -> str:
    """
    Returns the LAN address other devices can reach this machine on.
    Falls back to loopback when there is no route out.
    """
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        # UDP connect sends nothing; it only selects the outbound interface
        s.connect((probe_host, 1))
        ip = s.getsockname()[0]
    except OSError:
        ip = "127.0.0.1"
    finally:
        s.close()
    return ip
