from collections import OrderedDict


def get_plugin_name(plugin):
    name = getattr(plugin, 'name', None)
    if not name or not isinstance(name, str):
        raise ValueError('expected plugin with a non-empty string name, not: %r' % plugin)
    if not callable(getattr(plugin, 'install', None)):
        raise TypeError('expected plugin with an install(command) method, not: %r' % plugin)
    return name


class Plugin(object):
    """Optional base type for plugins. A plugin is any object with a
    *name* and an ``install(command)`` method, called once for each
    Command the plugin is used with.
    """
    name = None

    def install(self, cmd):
        raise NotImplementedError()

    def __repr__(self):
        return '<%s name=%r>' % (self.__class__.__name__, self.name)


class PluginRegistry(object):
    """A caller-owned collection of plugins, passed to
    :class:`~switchyard.Command` as *plugins*. Every plugin in the
    registry is installed on that Command when it is constructed.

    Registries are plain values; nothing is shared between Commands
    that don't share a registry.
    """
    def __init__(self, plugins=None):
        self._plugin_map = OrderedDict()
        for plugin in plugins or ():
            self.register(plugin)

    def register(self, plugin):
        name = get_plugin_name(plugin)
        if name in self._plugin_map:
            raise ValueError('duplicate plugin name: %r' % name)
        self._plugin_map[name] = plugin
        return plugin

    def get(self, name, default=None):
        return self._plugin_map.get(name, default)

    def names(self):
        return list(self._plugin_map.keys())

    def __contains__(self, name):
        return name in self._plugin_map

    def __iter__(self):
        return iter(list(self._plugin_map.values()))

    def __len__(self):
        return len(self._plugin_map)

    def __repr__(self):
        return '<%s names=%r>' % (self.__class__.__name__, self.names())
