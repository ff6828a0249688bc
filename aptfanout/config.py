import os
import re
from typing import List, Tuple


def _env_flag(name: str) -> bool:
    return os.getenv(name, '').lower() in ('true', '1', 'yes', 'y')


def _env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name, '')
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


OS_TEMPLATE = {
    'ubuntu-lts': ["focal", "jammy", "noble"],
    'debian-current': ["bullseye", "bookworm"],
    'debian-latest2': ["bullseye", "bookworm"],
    'debian-latest': ["bookworm"],
}

DEFAULT_MIRRORS = [
    # Canada mirrors
    "http://ftp.ca.debian.org/debian/",
    "http://debian.mirror.iweb.ca/debian/",
    "http://debian.mirror.rafal.ca/debian/",
    "http://mirror.csclub.uwaterloo.ca/debian/",
    "http://mirror.estone.ca/debian/",
    "http://mirror.it.ubc.ca/debian/",
]
DEFAULT_DISTS = [
    "buster",
    "buster-updates",
    "buster-backports",
    "bullseye",
    "bullseye-updates",
    "bullseye-backports",
]
DEFAULT_COMPONENTS = ["main", "contrib", "non-free", "main/debian-installer"]
DEFAULT_ARCHS = ["amd64", "i386"]

INDEX_URL = os.getenv('INDEX_URL', 'http://deb.debian.org/debian')
MIRROR_LIST = _env_list('MIRROR_LIST', DEFAULT_MIRRORS)
LANE_CAPACITY = int(os.getenv('LANE_CAPACITY', '1000'))
CONNECT_TIMEOUT = int(os.getenv('CONNECT_TIMEOUT', '60'))
READ_TIMEOUT = int(os.getenv('READ_TIMEOUT', '60'))
# overall deadline for one streamed file
DOWNLOAD_TIMEOUT = int(os.getenv('DOWNLOAD_TIMEOUT', '7200'))
CHUNK_SIZE = int(os.getenv('CHUNK_SIZE', str(1024**2)))
APTFANOUT_USER_AGENT = os.getenv('APTFANOUT_USER_AGENT', 'APT-Fanout/1.0')
FLUSH_TAIL = _env_flag('FLUSH_TAIL')
VERIFY_INDEX = _env_flag('VERIFY_INDEX')
# 是否显示下载调试信息
DOWNLOAD_DEBUG = _env_flag('DOWNLOAD_DEBUG')
# 是否显示索引调试信息
INDEX_DEBUG = _env_flag('INDEX_DEBUG')

pattern_os_template = re.compile(r"@\{(.+)\}")


def check_args(prop: str, lst: List[str]):
    for s in lst:
        if len(s) == 0 or ' ' in s:
            raise ValueError(f"Invalid item in {prop}: {repr(s)}")


def replace_os_template(os_list: List[str]) -> List[str]:
    ret = []
    for i in os_list:
        matched = pattern_os_template.search(i)
        if matched:
            for os_name in OS_TEMPLATE[matched.group(1)]:
                ret.append(pattern_os_template.sub(os_name, i))
        elif i.startswith('@'):
            ret.extend(OS_TEMPLATE[i[1:]])
        else:
            ret.append(i)
    return ret


def component_arch_pairs(components: List[str], archs: List[str]) -> List[Tuple[str, str]]:
    """Every (component, arch) combination, component-major."""
    return [(comp, arch) for comp in components for arch in archs]
