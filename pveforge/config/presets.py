"""Named default bundles for common container layouts.

Keys mirror the YAML spec file format. A preset only has to list what it
changes relative to DEFAULTS.
"""

DEFAULTS = {
    'vmid': 100,
    'hostname': 'Container',
    'cores': 3,
    'memory': 1024,
    'swap': 512,
    'disk_size': 8,
    'storage': 'local-lvm',
    'template_storage': 'local',
    'os_version': 'debian-12',
    'network': {
        'bridge': 'vmbr0',
        'ip': 'dhcp',
        'gateway': None,
        'firewall': True,
    },
    'privileged': False,
    'features': [],
    'onboot': False,
    'gpu': {
        'enabled': False,
        'card': None,
        'render_gid': 993,
        'video_gid': 44,
        'mode': '0666',
    },
    'devices': [],
    'mounts': [],
    'start': False,
    'apt_release': None,
    'packages': [],
    'apps': [],
}

PRESETS = {
    'container': {
        'summary': 'General purpose Debian 12 container with iGPU passthrough',
        'gpu': {'enabled': True},
        'start': True,
        'apt_release': 'bookworm',
        'packages': ['curl'],
    },
    'plex': {
        'summary': 'Unprivileged Plex Media Server with VA-API iGPU passthrough',
        'hostname': 'Plex',
        'memory': 8192,
        'swap': 2048,
        'gpu': {'enabled': True},
        'apps': ['plex'],
    },
    'plex-privileged': {
        'summary': 'Privileged Plex container binding /dev/dri, left stopped',
        'hostname': 'Plex',
        'memory': 8192,
        'swap': 2048,
        'privileged': True,
        'features': ['nesting=1'],
        'gpu': {'enabled': True},
    },
    'sabnzbd': {
        'summary': 'SABnzbd from Debian backports',
        'hostname': 'SABnzbd',
        'cores': 2,
        'memory': 2048,
        'apps': ['sabnzbd'],
    },
    'nzbget': {
        'summary': 'NZBGet from the nzbget.com repository',
        'hostname': 'NZBGet',
        'cores': 2,
        'memory': 1024,
        'apps': ['nzbget'],
    },
}

DEFAULT_PRESET = 'container'
