from feedstream.main.container.container import Container


def get_container() -> Container:
    return Container()
