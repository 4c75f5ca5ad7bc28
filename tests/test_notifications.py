from crm_imobiliario.notifications import Notifier


def test_historico_e_ouvintes():
    notifier = Notifier()
    recebidas = []
    unsubscribe = notifier.subscribe(recebidas.append)

    notifier.success("Cliente criado", "O cliente foi criado com sucesso.")
    unsubscribe()
    notifier.error("Erro ao criar cliente", "500: falha")

    assert len(recebidas) == 1
    assert [n.is_error for n in notifier.history] == [False, True]
    assert str(notifier.last) == "❌ Erro ao criar cliente: 500: falha"

    notifier.clear()
    assert notifier.last is None
